from typing import Any, ClassVar, Dict, List
from pkpublish.utils.logger import logger
from pkpublish.utils.exceptions import UnsupportedTypeError


class ComponentFactory:
    """
    Name-keyed registry of pluggable component classes.

    Subclasses give each kind of component its own REGISTRY and a
    human-readable KIND used in log and error messages. Names are matched
    case-insensitively.
    """

    KIND: ClassVar[str] = "component"
    REGISTRY: ClassVar[Dict[str, type]] = {}

    @classmethod
    def register(cls, name: str, component_class: type) -> None:
        """
        Register an implementation.

        Args:
            name (str): The name to register the implementation under.
            component_class (type): The class to register.
        """
        cls.REGISTRY[name.lower()] = component_class

    @classmethod
    def supported(cls) -> List[str]:
        return list(cls.REGISTRY.keys())

    @classmethod
    def create(cls, component_type: str, **kwargs) -> Any:
        """
        Create an implementation based on requested type.

        Args:
            component_type (str): The registered name to create.
            **kwargs: Configuration parameters passed to the implementation.

        Returns:
            Any: An initialized instance of the registered class.

        Raises:
            UnsupportedTypeError: If the requested type is not registered.
        """
        normalized_type = component_type.lower()
        logger.debug(f"Creating {cls.KIND} of type: {normalized_type}")

        if normalized_type not in cls.REGISTRY:
            message = (
                f"Unsupported {cls.KIND} type: {component_type}. "
                f"Supported types: {cls.supported()}"
            )
            logger.error(message)
            raise UnsupportedTypeError(message)

        return cls.REGISTRY[normalized_type](**kwargs)
