"""PDF Rendering Client: HTML to PDF through PDFShift.

Invariants:
    - Missing API key fails fast with PDF_SERVICE_NOT_CONFIGURED (no network call)
    - Output is always Letter portrait with 15mm margins
"""

from tistis.core.errors import ErrorContext, ServiceNotConfiguredError
from tistis.infrastructure.resilient_http import ResilientHttpClient

PDFSHIFT_URL = "https://api.pdfshift.io/v3/convert/pdf"


class PdfClient:
    def __init__(self, api_key: str, http: ResilientHttpClient | None = None):
        self.api_key = api_key
        self.http = http or ResilientHttpClient("pdfshift", timeout_seconds=60.0)

    async def html_to_pdf(self, html: str, context: ErrorContext | None = None) -> bytes:
        if not self.api_key:
            raise ServiceNotConfiguredError(
                "PDF rendering service", "PDF_SERVICE_NOT_CONFIGURED", context,
            )
        response = await self.http.post(
            PDFSHIFT_URL,
            auth=("api", self.api_key),
            json={
                "source": html,
                "landscape": False,
                "format": "Letter",
                "margin": "15mm",
            },
            context=context,
        )
        return response.content
