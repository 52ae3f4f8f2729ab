"""Rewrite rendered upstream markup with the bridge's branding."""

from __future__ import annotations

import html
import re

from utils.config import BridgeConfig

_BRANDING_TEMPLATE = """
<!-- Custom Rebranding Injection -->
<style id="custom-rebrand-styles">
  :root {{
    --primary-color: {primary} !important;
    --secondary-color: {secondary} !important;
  }}
  img[src*="{upstream_lower}"],
  img[alt*="{upstream_lower}" i] {{
    display: none !important;
  }}
  button[class*="primary"],
  .btn-primary {{
    background-color: {primary} !important;
    border-color: {primary} !important;
  }}
  button[class*="primary"]:hover,
  .btn-primary:hover {{
    background-color: {secondary} !important;
  }}
</style>
<link rel="stylesheet" href="/custom-assets/custom.css">
<script id="custom-rebrand-script">
  (function() {{
    document.title = document.title.replace(/{upstream_js}/gi, {brand_js});
  }})();
</script>
"""


def replace_brand_tokens(markup: str, config: BridgeConfig) -> str:
    """Replace the upstream domain, then the brand name, ignoring case."""
    markup = re.sub(re.escape(config.upstream_domain), config.public_host, markup, flags=re.IGNORECASE)
    return re.sub(re.escape(config.upstream_brand), config.brand_name, markup, flags=re.IGNORECASE)


def branding_payload(config: BridgeConfig) -> str:
    """Build the style and script block injected into every rendered document."""
    brand_js = '"' + config.brand_name.replace("\\", "\\\\").replace('"', '\\"') + '"'
    return _BRANDING_TEMPLATE.format(
        primary=html.escape(config.primary_color),
        secondary=html.escape(config.secondary_color),
        upstream_lower=html.escape(config.upstream_brand.lower()),
        upstream_js=re.escape(config.upstream_brand).replace("/", "\\/"),
        brand_js=brand_js,
    )


def inject_branding(markup: str, payload: str) -> str:
    """Insert `payload` before `</head>`, or before `</body>` when there is no head."""
    for closing in ("</head>", "</body>"):
        index = markup.find(closing)
        if index != -1:
            return markup[:index] + payload + markup[index:]
    return markup


def rebrand_document(markup: str, config: BridgeConfig) -> str:
    return inject_branding(replace_brand_tokens(markup, config), branding_payload(config))


def proxy_error_page(message: str) -> str:
    return f"<h1>Proxy Error</h1><p>{html.escape(message)}</p>"
