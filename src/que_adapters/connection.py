"""
Adapter construction from configuration.

`connect()` accepts AdapterOptions, a dict, a config attribute name or
keyword arguments, and returns the adapter registered under
`options.adapter`, already holding its connection, pool or engine.
"""
import logging
from dataclasses import fields
from typing import Any

from que_adapters.adapters import Adapter, get_adapter_class
from que_adapters.options import AdapterOptions

from libb import load_options

__all__ = ['connect']

logger = logging.getLogger(__name__)


@load_options(cls=AdapterOptions)
def connect(options: AdapterOptions | dict[str, Any] | str,
            config: Any | None = None, **kw: Any) -> Adapter:
    """Build an adapter from configuration

    Args:
        options: Can be:
                - AdapterOptions object
                - String path to configuration
                - Dictionary of options
                - Options specified as keyword arguments
        config: Configuration object (for loading from config files)
        **kw: Additional keyword arguments passed to the adapter's from_options()

    Returns
        Adapter selected by `options.adapter`
    """
    if isinstance(options, AdapterOptions):
        for field in fields(options):
            kw.pop(field.name, None)
    else:
        options_func = load_options(cls=AdapterOptions)(lambda o, c: o)
        options = options_func(options, config, **kw)
        kw = {}

    adapter_cls = get_adapter_class(options.adapter)
    adapter = adapter_cls.from_options(options, **kw)
    logger.debug(f'Created {adapter_cls.__name__} for {options.hostname}/{options.database}')
    return adapter
