"""
PromptRenderer Service
Handles Jinja2 template rendering with variable validation
"""

from jinja2 import Environment, StrictUndefined, TemplateSyntaxError, UndefinedError
import structlog

logger = structlog.get_logger(__name__)


class PromptRenderer:
    """
    Renders Jinja2 prompt templates with variable validation.

    Missing variables raise instead of rendering as empty strings, so a
    database template that references an unknown variable fails loudly.
    """

    def __init__(self):
        # LLM prompts don't need HTML escaping
        self.env = Environment(
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
            undefined=StrictUndefined,
            keep_trailing_newline=False,
        )

    def render(
        self,
        template_str: str,
        variables: dict,
        template_name: str = "unknown"
    ) -> str:
        """
        Render Jinja2 template with variables.

        Args:
            template_str: Jinja2 template string (database or built-in)
            variables: Dict of variables to interpolate
            template_name: For error logging (e.g., "knowledge.reference_entry")

        Returns:
            Rendered prompt string

        Raises:
            TemplateSyntaxError: Invalid Jinja2 syntax
            UndefinedError: Missing required variable
        """
        try:
            template = self.env.from_string(template_str)
            rendered = template.render(**variables)

            logger.debug(
                "prompt_rendered",
                template_name=template_name,
                variables=list(variables.keys()),
                rendered_length=len(rendered)
            )

            return rendered

        except TemplateSyntaxError as e:
            logger.error(
                "template_syntax_error",
                template_name=template_name,
                error=str(e),
                line=e.lineno
            )
            raise

        except UndefinedError as e:
            logger.error(
                "template_variable_missing",
                template_name=template_name,
                error=str(e),
                provided_vars=list(variables.keys())
            )
            raise
