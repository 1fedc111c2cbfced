"""Report Templates: jinja2 HTML for the PDF business reports.

Invariants:
    - One base document; each report type contributes only its stat cards
    - Values are formatted by filters (currency, number, date, percent), never in Python
"""

from jinja2 import DictLoader, Environment, select_autoescape

from tistis.core.report_format import (
    format_currency, format_date, format_number, format_percent,
)

_STYLES = """
body { font-family: 'Helvetica Neue', Arial, sans-serif; color: #1f2937; margin: 0; }
.header { display: flex; justify-content: space-between; border-bottom: 3px solid #2563eb; padding-bottom: 16px; }
.logo { font-size: 28px; font-weight: 700; color: #2563eb; }
.tagline { font-size: 12px; color: #6b7280; }
.report-info { text-align: right; }
.report-info h1 { margin: 0; font-size: 22px; }
.period, .dates { margin: 2px 0; color: #6b7280; font-size: 12px; }
.tenant-info { margin: 20px 0; }
.stats-grid { display: flex; flex-wrap: wrap; gap: 12px; }
.stat-card { width: 30%; border: 1px solid #e5e7eb; border-radius: 8px; padding: 12px; }
.stat-card.primary { border-color: #2563eb; }
.stat-card.success { border-color: #16a34a; }
.stat-card.warning { border-color: #d97706; }
.stat-card.danger { border-color: #dc2626; }
.stat-label { display: block; font-size: 11px; color: #6b7280; text-transform: uppercase; }
.stat-value { display: block; font-size: 22px; font-weight: 700; margin-top: 4px; }
table { width: 100%; border-collapse: collapse; margin-top: 20px; font-size: 12px; }
th, td { border-bottom: 1px solid #e5e7eb; padding: 6px; text-align: left; }
.narrative { margin-top: 24px; padding: 16px; background: #eff6ff; border-radius: 8px; white-space: pre-line; }
.footer { margin-top: 32px; font-size: 10px; color: #9ca3af; text-align: center; }
"""

_BASE = """<!doctype html>
<html lang="es">
<head><meta charset="utf-8"><style>{{ styles|safe }}</style></head>
<body>
<div class="report-container">
  <div class="header">
    <div class="logo-section">
      <div class="logo">TIS TIS</div>
      <span class="tagline">Business Intelligence</span>
    </div>
    <div class="report-info">
      <h1>{{ report_label }}</h1>
      <p class="period">{{ period_label }}</p>
      <p class="dates">{{ start_date|date }} - {{ end_date|date }}</p>
    </div>
  </div>
  <div class="tenant-info">
    <h2>{{ tenant_name }}</h2>
    <p>Generado el {{ generated_at|date }}</p>
  </div>
  <div class="stats-grid">{% block cards %}{% endblock %}</div>
  {% block details %}{% endblock %}
  <div class="footer">Reporte generado automáticamente por TIS TIS</div>
</div>
</body>
</html>
"""

_CARD = """{% macro card(label, value, tone="") -%}
<div class="stat-card {{ tone }}">
  <span class="stat-label">{{ label }}</span>
  <span class="stat-value">{{ value }}</span>
</div>
{%- endmacro %}"""

_LEADS = """{% extends "base.html" %}{% from "card.html" import card %}
{% block cards %}
{{ card("Leads Totales", stats.total_leads|number, "primary") }}
{{ card("Nuevos Leads", stats.new_leads|number, "success") }}
{{ card("Leads Calientes", stats.hot_leads|number, "warning") }}
{{ card("Leads Tibios", stats.warm_leads|number) }}
{{ card("Leads Fríos", stats.cold_leads|number) }}
{{ card("Citas", stats.appointments|number, "info") }}
{{ card("Citas Completadas", stats.completed_appointments|number) }}
{{ card("Tasa de Conversión", stats.conversion_rate|percent) }}
{% endblock %}
"""

_SALES = """{% extends "base.html" %}{% from "card.html" import card %}
{% block cards %}
{{ card("Ingresos Totales", stats.total_revenue|currency, "primary") }}
{{ card("Órdenes Completadas", stats.completed_orders|number, "success") }}
{{ card("Ticket Promedio", stats.avg_ticket|currency, "info") }}
{{ card("Total Órdenes", stats.total_orders|number) }}
{% endblock %}
{% block details %}
{% if stats.payment_methods %}
<table>
  <tr><th>Método de pago</th><th>Órdenes</th></tr>
  {% for method, count in stats.payment_methods.items() %}
  <tr><td>{{ method }}</td><td>{{ count|number }}</td></tr>
  {% endfor %}
</table>
{% endif %}
{% endblock %}
"""

_OPERATIONS = """{% extends "base.html" %}{% from "card.html" import card %}
{% block cards %}
{{ card("Total Citas", stats.total_appointments|number, "primary") }}
{{ card("Completadas", stats.completed|number, "success") }}
{{ card("Canceladas", stats.cancelled|number, "warning") }}
{{ card("No Show", stats.no_show|number, "danger") }}
{{ card("Tasa Completadas", stats.completion_rate|percent, "info") }}
{{ card("Tasa Cancelación", stats.cancellation_rate|percent) }}
{% endblock %}
"""

_INVENTORY = """{% extends "base.html" %}{% from "card.html" import card %}
{% block cards %}
{{ card("Total Productos", stats.total_items|number, "primary") }}
{{ card("Stock Bajo", stats.low_stock_count|number, "warning") }}
{{ card("Valor Total", stats.total_value|currency, "success") }}
{% endblock %}
{% block details %}
{% if stats.low_stock_items %}
<table>
  <tr><th>Producto</th><th>Actual</th><th>Mínimo</th></tr>
  {% for item in stats.low_stock_items %}
  <tr><td>{{ item.name }}</td><td>{{ item.current_stock|number }}</td><td>{{ item.minimum_stock|number }}</td></tr>
  {% endfor %}
</table>
{% endif %}
{% endblock %}
"""

_AI = """{% extends "base.html" %}{% from "card.html" import card %}
{% block cards %}
{{ card("Conversaciones", stats.total_conversations|number, "primary") }}
{{ card("Resueltas", stats.resolved|number, "success") }}
{{ card("Escaladas", stats.escalated|number, "warning") }}
{{ card("Tasa de Resolución", stats.resolution_rate|percent, "info") }}
{{ card("Tasa de Escalamiento", stats.escalation_rate|percent) }}
{{ card("Mensajes", stats.total_messages|number) }}
{% endblock %}
{% block details %}
{% if narrative %}<div class="narrative">{{ narrative }}</div>{% endif %}
{% endblock %}
"""

TEMPLATES = {
    "base.html": _BASE,
    "card.html": _CARD,
    "leads.html": _LEADS,
    "sales.html": _SALES,
    "operations.html": _OPERATIONS,
    "inventory.html": _INVENTORY,
    "ai.html": _AI,
}

env = Environment(loader=DictLoader(TEMPLATES), autoescape=select_autoescape(["html"]))
env.filters["currency"] = format_currency
env.filters["number"] = format_number
env.filters["date"] = format_date
env.filters["percent"] = format_percent


def render_report(template_name: str, **context) -> str:
    return env.get_template(template_name).render(styles=_STYLES, **context)
