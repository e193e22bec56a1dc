from typing import Dict, ClassVar, Type
from pkpublish.datasources.base import DataSource
from pkpublish.utils.factory import ComponentFactory


class DataSourceFactory(ComponentFactory):
    """Factory for transaction sources, selected by DS_TYPE."""

    KIND = "data source"
    REGISTRY: ClassVar[Dict[str, Type[DataSource]]] = {}

    @classmethod
    def register_datasource(cls, name: str, datasource_class: Type[DataSource]) -> None:
        cls.register(name, datasource_class)
