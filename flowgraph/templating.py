"""Placeholder rendering for message templates."""

import re
from typing import Dict, Optional


def render_template(template: Optional[str], variables: Optional[Dict[str, str]] = None) -> str:
    """
    Replace `{{key}}` and `{key}` placeholders, case-insensitively.

    Double braces are replaced first. Placeholders without a value are left
    as they are so the operator can see what the runtime would fill in.
    """
    result = template or ''
    for key, value in (variables or {}).items():
        text = '' if value is None else str(value)
        result = re.sub(r'\{\{' + re.escape(key) + r'\}\}', lambda _m: text, result, flags=re.IGNORECASE)
        result = re.sub(r'\{' + re.escape(key) + r'\}', lambda _m: text, result, flags=re.IGNORECASE)
    return result
