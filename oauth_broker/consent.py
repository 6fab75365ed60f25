"""
Consent page shown before the first upstream redirect for a client.
Every caller-controlled value is HTML-escaped; URLs additionally pass sanitize_url.
"""
import html
from urllib.parse import urlsplit

from fastapi.responses import HTMLResponse


def sanitize_text(text: str | None) -> str:
    return html.escape(text or "", quote=True)


def sanitize_url(url: str | None) -> str:
    """Return `url` if it is an absolute http(s) URL, else "#"."""
    if not url:
        return "#"
    try:
        parts = urlsplit(url)
    except ValueError:
        return "#"
    if parts.scheme not in ("http", "https") or not parts.netloc:
        return "#"
    return parts.geturl()


def _origin(url: str | None) -> str:
    if not url:
        return ""
    try:
        parts = urlsplit(url)
    except ValueError:
        return ""
    if parts.scheme not in ("http", "https") or not parts.netloc:
        return ""
    return f"{parts.scheme}://{parts.netloc}"


def render_approval_dialog(
    client_id: str,
    scope: str,
    csrf_token: str,
    state_encoded: str,
    request_url: str | None = None,
    redirect_uri: str | None = None,
    form_action: str = "/authorize",
) -> HTMLResponse:
    """Consent form posting back to `form_action` with the CSRF token and the encoded request."""
    e = sanitize_text
    redirect_row = ""
    if redirect_uri:
        safe = sanitize_url(redirect_uri)
        redirect_row = f"""
      <dt>Redirect URI</dt>
      <dd>{e(safe)}</dd>"""

    body = f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>Authorize application</title>
  <style>
    body {{ font-family: system-ui, sans-serif; background: #f5f5f5; display: flex; justify-content: center; align-items: center; min-height: 100vh; margin: 0; }}
    .card {{ background: white; border-radius: 12px; padding: 2rem; max-width: 400px; width: 90%; box-shadow: 0 2px 10px rgba(0,0,0,0.1); }}
    h1 {{ font-size: 1.3rem; margin: 0 0 1rem; }}
    .info {{ background: #f0f0f0; border-radius: 8px; padding: 1rem; margin: 1rem 0; font-size: 0.9rem; }}
    .info dt {{ font-weight: 600; }}
    .info dd {{ margin: 0.25rem 0 0.75rem; word-break: break-all; }}
    .actions {{ display: flex; gap: 0.75rem; margin-top: 1.5rem; }}
    button {{ flex: 1; padding: 0.75rem; border: none; border-radius: 8px; font-size: 1rem; cursor: pointer; }}
    .approve {{ background: #4CAF50; color: white; }}
    .deny {{ background: #e0e0e0; }}
  </style>
</head>
<body>
  <div class="card">
    <h1>Authorize application</h1>
    <p>An application is requesting access on your behalf.</p>
    <dl class="info">
      <dt>Client ID</dt>
      <dd>{e(client_id)}</dd>
      <dt>Scope</dt>
      <dd>{e(scope or "default")}</dd>{redirect_row}
    </dl>
    <form method="post" action="{e(form_action)}">
      <input type="hidden" name="csrf_token" value="{e(csrf_token)}"/>
      <input type="hidden" name="state" value="{e(state_encoded)}"/>
      <div class="actions">
        <button type="submit" name="action" value="approve" class="approve">Approve</button>
        <button type="submit" name="action" value="deny" class="deny">Deny</button>
      </div>
    </form>
  </div>
</body>
</html>"""
    csp = f"default-src 'none'; style-src 'unsafe-inline'; frame-ancestors 'none'; form-action 'self' {_origin(request_url)}".rstrip()
    return HTMLResponse(body, headers={"Content-Security-Policy": csp})
