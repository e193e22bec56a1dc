from typing import Any, Callable
import json
from pkpublish.utils.logger import logger
from pkpublish.utils.exceptions import FormattingError


class Serializer:
    """
    Renders message documents as JSON text for the broker.

    Rendering never raises to the caller. A document that cannot be rendered
    is replaced by caller supplied fallback text.
    """

    def render(self, data: Any) -> str:
        """
        Render data as compact JSON text.

        Values that JSON has no type for (dates, decimals, bytes) are rendered
        with str().

        Raises:
            FormattingError: If the document cannot be rendered, e.g. it is
                circular or has keys JSON cannot represent.
        """
        try:
            return json.dumps(data, default=str, separators=(",", ":"))
        except (TypeError, ValueError) as e:
            raise FormattingError(f"Unable to render message: {e}")

    def to_json(self, data: Any, fallback: Callable[[], str]) -> str:
        """
        Render data as compact JSON text, or return the fallback text.

        Args:
            data (Any): The document to render.
            fallback (Callable[[], str]): Produces the replacement text.

        Returns:
            str: The JSON text or the fallback text.
        """
        try:
            return self.render(data)
        except FormattingError as e:
            logger.warning(f"{e}, using fallback message")
            return fallback()
