"""Email Templates: jinja2 HTML bodies for transactional email.

Invariants:
    - Autoescaping is on for every template (names end in .html)
    - Templates only receive already-formatted values; no IO happens while rendering
"""

from jinja2 import DictLoader, Environment, select_autoescape

from tistis.core.report_format import format_currency, format_date, format_number

_LAYOUT = """<!doctype html>
<html lang="es">
<head><meta charset="utf-8"><title>{% block title %}TIS TIS{% endblock %}</title></head>
<body style="font-family: Arial, sans-serif; background: #f5f6f8; margin: 0; padding: 24px;">
  <div style="max-width: 600px; margin: 0 auto; background: #ffffff; border-radius: 8px; padding: 24px;">
    <h1 style="font-size: 20px; color: #1f2937;">{% block heading %}{% endblock %}</h1>
    {% block body %}{% endblock %}
    <p style="font-size: 12px; color: #9ca3af; margin-top: 32px;">TIS TIS · Este es un mensaje automático.</p>
  </div>
</body>
</html>
"""

_LOW_STOCK = """{% extends "layout.html" %}
{% block title %}Alerta de inventario{% endblock %}
{% block heading %}{{ items|length }} producto(s) con stock bajo{% endblock %}
{% block body %}
<table style="width: 100%; border-collapse: collapse;">
  <tr><th align="left">Producto</th><th align="right">Actual</th><th align="right">Mínimo</th><th align="left">Nivel</th></tr>
  {% for item in items %}
  <tr>
    <td>{{ item.name }}</td>
    <td align="right">{{ item.current_stock|number }} {{ item.unit }}</td>
    <td align="right">{{ item.minimum_stock|number }} {{ item.unit }}</td>
    <td style="color: {{ '#dc2626' if item.alert_type == 'critical' else '#d97706' }};">
      {{ 'Crítico' if item.alert_type == 'critical' else 'Advertencia' }}
    </td>
  </tr>
  {% endfor %}
</table>
{% endblock %}
"""

_VOICE_USAGE = """{% extends "layout.html" %}
{% block title %}Uso de minutos de voz{% endblock %}
{% block heading %}Has usado el {{ usage_percent }}% de tus minutos incluidos{% endblock %}
{% block body %}
<p>Minutos usados: <strong>{{ used_minutes|number }}</strong> de {{ included_minutes|number }}.</p>
{% if overage_minutes %}
<p>Minutos excedentes: <strong>{{ overage_minutes|number }}</strong> ({{ overage_charges|currency }}).</p>
{% endif %}
{% if policy == "block" and usage_percent >= 100 %}
<p style="color: #dc2626;">Las llamadas nuevas están bloqueadas hasta el siguiente periodo.</p>
{% endif %}
{% endblock %}
"""

_KEY_EXPIRING = """{% extends "layout.html" %}
{% block title %}API key por expirar{% endblock %}
{% block heading %}Tu API key "{{ key_name }}" expira pronto{% endblock %}
{% block body %}
<p>La llave terminada en <code>{{ key_hint }}</code> expira el {{ expires_at|date }}
({{ days_left }} día(s)).</p>
<p>Rótala desde Configuración → API Keys para evitar interrupciones.</p>
{% endblock %}
"""

_REPORT_READY = """{% extends "layout.html" %}
{% block title %}Tu reporte está listo{% endblock %}
{% block heading %}{{ report_label }} · {{ period_label }}{% endblock %}
{% block body %}
<p>Tu reporte ya está disponible.</p>
<p><a href="{{ pdf_url }}" style="color: #2563eb;">Descargar PDF</a></p>
{% endblock %}
"""

TEMPLATES = {
    "layout.html": _LAYOUT,
    "low_stock_alert.html": _LOW_STOCK,
    "voice_usage_alert.html": _VOICE_USAGE,
    "api_key_expiring.html": _KEY_EXPIRING,
    "report_ready.html": _REPORT_READY,
}

env = Environment(loader=DictLoader(TEMPLATES), autoescape=select_autoescape(["html"]))
env.filters["currency"] = format_currency
env.filters["number"] = format_number
env.filters["date"] = format_date


def render_email(template_name: str, **context) -> str:
    return env.get_template(template_name).render(**context)
