from pkpublish.datasources.base import DataSource
from pkpublish.datasources.factory import DataSourceFactory
from pkpublish.datasources.mysql import MySQLDataSource

# Register the MySQL binlog source with the factory
DataSourceFactory.register_datasource("mysql", MySQLDataSource)

__all__ = ["DataSource", "DataSourceFactory", "MySQLDataSource"]
