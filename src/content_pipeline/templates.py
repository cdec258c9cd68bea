"""Jinja2 template rendering for chat prompts.

Templates use {{ args.field }} syntax. StrictUndefined ensures
missing variables blow up immediately instead of silently rendering
empty strings.
"""

from __future__ import annotations

from typing import Any

import jinja2

_ENV = jinja2.Environment(
    undefined=jinja2.StrictUndefined,
    keep_trailing_newline=True,
    trim_blocks=True,
    lstrip_blocks=True,
)

PROMPT_TEMPLATE = """\
{% if args.instructions %}
<system_instructions>
{{ args.instructions | join("\\n\\n") }}
</system_instructions>

{% endif %}
{% if args.references %}
<reference_context>
{% for ref in args.references %}
=== {{ ref.name }} ===
{{ ref.content }}
{% if not loop.last %}

{% endif %}
{% endfor %}
</reference_context>

{% endif %}
<input_content>
{{ args.input }}
</input_content>

{% if args.next_steps %}
<routing_instructions>
Choose specific filenames based on actual content, not generic categories.
Use the main action or key details from the content:
- "Buy 3x Tomatoes at Supermarket.md" NOT "Shopping List.md"
- "Call John about Budget Meeting.md" NOT "Phone Calls.md"
- "Fix Kitchen Sink This Weekend.md" NOT "Home Repairs.md"

Use the nextStep field to route content to the most appropriate processing step.

Available routing options: {{ args.next_steps | join(", ") }}
</routing_instructions>

{% endif %}
IMPORTANT: Generate output ONLY for the content in the <input_content> section. \
Do not create separate outputs for system instructions or reference context.
"""


def render_template(template_str: str, variables: dict[str, Any]) -> str:
    """Render a Jinja2 template string with variables available as ``args``.

    Args:
        template_str: Jinja2 template (e.g., "Hello {{ args.name }}").
        variables: Dict of values accessible via ``{{ args.key }}``.

    Returns:
        Rendered string.

    Raises:
        jinja2.UndefinedError: If the template references a variable
            that doesn't exist in *variables*.
    """
    template = _ENV.from_string(template_str)
    return template.render(args=variables)
