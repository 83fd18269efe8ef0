from dataclasses import dataclass

from dbroutine.adapters import get_adapter_class, get_available_dialects
from dbroutine.adapters import is_supported_dialect

from libb import ConfigOptions, scriptname

__all__ = ['DatabaseOptions']


@dataclass
class DatabaseOptions(ConfigOptions):
    """Options

    supported driver names: `postgresql`

    ``auto_commit`` makes the adapter commit after every routine call.
    """
    drivername: str = 'postgresql'
    hostname: str = None
    username: str = None
    password: str = None
    database: str = None
    port: int = 0
    timeout: int = 0
    appname: str = None
    auto_commit: bool = True

    def __post_init__(self):
        if not is_supported_dialect(self.drivername):
            available = get_available_dialects()
            raise ValueError(f'drivername must be one of: {available}')
        self.appname = self.appname or scriptname() or 'python_console'
        adapter_cls = get_adapter_class(self.drivername)
        adapter_cls.validate_options(self)

    def __str__(self) -> str:
        return (f'{self.drivername}://{self.username}@{self.hostname}:{self.port}'
                f'/{self.database}?appname={self.appname}')
