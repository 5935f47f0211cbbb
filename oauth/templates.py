"""HTML templates for the OAuth callback.

Colors:
- Background: #121212
- Card: #181818
- Primary: #1DB954 (Spotify green)
- Error: #E74C3C
- Secondary text: #B3B3B3

Placeholders are filled with str.format(); values must be escaped by the caller.
"""

import html
import json

_STYLE = """
    <style>
        body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', sans-serif;
               background: #121212; color: #FFFFFF;
               min-height: 100vh; display: flex; align-items: center; justify-content: center; margin: 0; }}
        .container {{ background: #181818; padding: 40px; border-radius: 16px; box-shadow: 0 4px 24px rgba(0,0,0,0.4);
                     width: 100%; max-width: 400px; text-align: center; }}
        h2 {{ margin: 0 0 12px; font-size: 22px; font-weight: 600; color: {accent}; }}
        p {{ color: #B3B3B3; margin: 0; }}
    </style>
"""

CALLBACK_SUCCESS_PAGE = """<!DOCTYPE html>
<html>
<head>
    <title>Login successful</title>
""" + _STYLE + """
</head>
<body>
    <div class="container">
        <h2>Login successful!</h2>
        <p>You can close this window now.</p>
    </div>
</body>
</html>
"""

CALLBACK_ERROR_PAGE = """<!DOCTYPE html>
<html>
<head>
    <title>Authentication failed</title>
""" + _STYLE + """
</head>
<body>
    <div class="container">
        <h2>Authentication failed</h2>
        <p>{message}</p>
    </div>
</body>
</html>
"""

# Popup mode: tell the opening window how the login went, then close.
CALLBACK_POPUP_PAGE = """<!DOCTYPE html>
<html>
<head>
    <title>{title}</title>
""" + _STYLE + """
</head>
<body>
    <div class="container">
        <h2>{title}</h2>
        <p>{message}</p>
    </div>
    <script>
        (function () {{
            var payload = {payload};
            if (window.opener) {{
                window.opener.postMessage(payload, {target_origin});
            }}
            window.close();
        }})();
    </script>
</body>
</html>
"""

MESSAGE_TYPE = "spotify-auth"


def _script_json(value) -> str:
    """JSON literal that is safe to inline inside a <script> element."""
    return json.dumps(value).replace("<", "\\u003c").replace(">", "\\u003e").replace("&", "\\u0026")


def render_success() -> str:
    return CALLBACK_SUCCESS_PAGE.format(accent="#1DB954")


def render_error(message: str) -> str:
    return CALLBACK_ERROR_PAGE.format(accent="#E74C3C", message=html.escape(message))


def render_popup(success: bool, target_origin: str, return_to: str = None, error: str = None) -> str:
    payload = {"type": MESSAGE_TYPE, "status": "success" if success else "error"}
    if return_to:
        payload["returnTo"] = return_to
    if error:
        payload["error"] = error

    if success:
        title, accent, message = "Login successful!", "#1DB954", "This window will close automatically."
    else:
        title, accent, message = "Authentication failed", "#E74C3C", error or "Unknown error"

    return CALLBACK_POPUP_PAGE.format(
        title=html.escape(title),
        accent=accent,
        message=html.escape(message),
        payload=_script_json(payload),
        target_origin=_script_json(target_origin),
    )
