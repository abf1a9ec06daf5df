"""Minimal HTML pages for the participant flow.

Every page is keyed by a template name. The body carries
``data-template`` and ``data-field`` attributes so the flow can be driven
(and tested) without a real template engine. All values are escaped.
"""

from html import escape

from fastapi.responses import HTMLResponse

# template -> (title, default message)
TEMPLATES: dict[str, tuple[str, str]] = {
    "home": ("ID-100", "Erkunde die Stadt in 100 Aufgaben."),
    "upload": ("Foto hochladen", "Wähle eine Aufgabe und lade dein Foto hoch."),
    "enter_name": ("Willkommen", "Bitte gib deinen Namen ein, um loszulegen."),
    "enter_name_invitation": (
        "Einladung annehmen",
        "Bitte gib deinen Namen ein, um der Einladung zu folgen.",
    ),
    "access_denied": ("Zugang verweigert", "Für diese Seite brauchst du einen gültigen Token."),
    "invalid_token": ("Ungültiger Token", "Dieser Token ist uns nicht bekannt."),
    "session_conflict": (
        "Werkzeug wird bereits verwendet",
        "Dieses Werkzeug wird gerade in einem anderen Browser benutzt.",
    ),
    "token_deactivated": ("Token deaktiviert", "Dieses Werkzeug wurde deaktiviert."),
    "limit_reached": (
        "Upload-Limit erreicht",
        "Mit diesem Werkzeug können keine weiteren Fotos hochgeladen werden.",
    ),
    "invitation_invalid": ("Einladung ungültig", "Diese Einladung kann nicht verwendet werden."),
    "server_error": ("Serverfehler", "Es ist ein Fehler aufgetreten. Bitte versuche es später erneut."),
}

# template -> (action, enctype, visible fields)
_FORMS: dict[str, tuple[str, str, tuple[str, ...]]] = {
    "upload": (
        "/upload",
        "multipart/form-data",
        ("derive_number", "image", "comment"),
    ),
    "enter_name": (
        "/upload/set-name",
        "application/x-www-form-urlencoded",
        ("player_name", "player_city", "agree_privacy"),
    ),
    "enter_name_invitation": (
        "/upload/invite/set-name",
        "application/x-www-form-urlencoded",
        ("player_name", "player_city", "agree_privacy"),
    ),
}

_INPUT_TYPES = {"image": "file", "agree_privacy": "checkbox", "derive_number": "number"}


def render_page(
    template: str,
    *,
    status_code: int = 200,
    message: str | None = None,
    csrf_token: str | None = None,
    **context,
) -> HTMLResponse:
    """Render a page for ``template`` with escaped context fields."""
    title, default_message = TEMPLATES.get(template, TEMPLATES["server_error"])
    parts = [
        "<!DOCTYPE html>",
        '<html lang="de">',
        "<head>",
        '<meta charset="utf-8">',
        f"<title>{escape(title)}</title>",
    ]
    if csrf_token:
        parts.append(f'<meta name="csrf-token" content="{escape(csrf_token)}">')
    parts += [
        "</head>",
        "<body>",
        f'<main data-template="{escape(template)}">',
        f"<h1>{escape(title)}</h1>",
        f'<p data-field="message">{escape(message or default_message)}</p>',
    ]
    for key, value in context.items():
        if value is None:
            continue
        parts.append(_render_field(key, value))
    if template in _FORMS:
        parts.append(_render_form(template, csrf_token, context))
    parts += ["</main>", "</body>", "</html>"]
    return HTMLResponse("\n".join(parts), status_code=status_code)


def _render_field(key: str, value) -> str:
    if isinstance(value, (list, tuple)):
        items = "".join(f"<li>{_render_item(item)}</li>" for item in value)
        return f'<ul data-field="{escape(key)}">{items}</ul>'
    return f'<p data-field="{escape(key)}">{escape(str(value))}</p>'


def _render_item(item) -> str:
    if isinstance(item, dict):
        return " ".join(
            f'<span data-key="{escape(str(k))}">{escape(str(v))}</span>'
            for k, v in item.items()
            if v is not None
        )
    return escape(str(item))


def _render_form(template: str, csrf_token: str | None, context: dict) -> str:
    action, enctype, fields = _FORMS[template]
    lines = [f'<form method="post" action="{action}" enctype="{enctype}">']
    for hidden in ("token", "invitation_code"):
        if context.get(hidden):
            lines.append(
                f'<input type="hidden" name="{hidden}" value="{escape(str(context[hidden]))}">'
            )
    if csrf_token:
        lines.append(f'<input type="hidden" name="csrf_token" value="{escape(csrf_token)}">')
    for field in fields:
        lines.append(f'<input type="{_INPUT_TYPES.get(field, "text")}" name="{field}">')
    lines.append('<button type="submit">Absenden</button>')
    lines.append("</form>")
    return "\n".join(lines)
