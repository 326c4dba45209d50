"""
Method registry for RPCP.

Local and remote methods share one flat namespace. A local entry wraps an
application handler; a remote entry forwards the invocation to the other
peer as an outbound call.
"""

import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, Iterator, Optional, Tuple, Union

from .errors import ErrorCode, MethodNotFoundError, RpcError

logger = logging.getLogger(__name__)

Handler = Callable[..., Any]
RemoteCall = Callable[[str, Any], Awaitable[Any]]


def spread_params(params: Any) -> Tuple[tuple, Dict[str, Any]]:
    """Turn wire params into (args, kwargs) for a handler."""
    if params is None:
        return (), {}
    if isinstance(params, list):
        return tuple(params), {}
    if isinstance(params, dict):
        return (), dict(params)
    return (params,), {}


def pack_params(args: tuple, kwargs: Dict[str, Any]) -> Any:
    """Turn Python call arguments into wire params."""
    if args and kwargs:
        raise TypeError("RPC methods take positional or keyword arguments, not both")
    if kwargs:
        return kwargs
    if args:
        return list(args)
    return None


class LocalMethod:
    """A method implemented by this peer."""

    def __init__(self, handler: Handler):
        if not callable(handler):
            raise TypeError(f"Handler must be callable, got {type(handler).__name__}")
        self.handler = handler
        try:
            self._signature: Optional[inspect.Signature] = inspect.signature(handler)
        except (TypeError, ValueError):
            # Some builtins expose no signature
            self._signature = None

    async def invoke(self, name: str, params: Any) -> Any:
        args, kwargs = spread_params(params)
        if self._signature is not None:
            try:
                self._signature.bind(*args, **kwargs)
            except TypeError as e:
                raise RpcError(ErrorCode.INVALID_PARAMS, f"Invalid params for {name}: {e}")

        result = self.handler(*args, **kwargs)
        if inspect.isawaitable(result):
            result = await result
        return result

    def __repr__(self) -> str:
        return f"LocalMethod({getattr(self.handler, '__qualname__', self.handler)!r})"


class RemoteMethod:
    """A method forwarded to the remote peer under the same name."""

    def __init__(self, call: RemoteCall):
        self._call = call

    async def invoke(self, name: str, params: Any) -> Any:
        return await self._call(name, params)

    def __repr__(self) -> str:
        return "RemoteMethod()"


Method = Union[LocalMethod, RemoteMethod]


class MethodRegistry:
    """Name to method mapping consulted for every inbound invocation."""

    def __init__(self, remote_call: RemoteCall):
        self._remote_call = remote_call
        self._methods: Dict[str, Method] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._methods

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._methods))

    def __len__(self) -> int:
        return len(self._methods)

    def get(self, name: str) -> Optional[Method]:
        return self._methods.get(name)

    def register_local(self, name: str, handler: Handler) -> None:
        """Install a local handler; a later registration of the same name wins."""
        self._install(name, LocalMethod(handler))

    def register_remote(self, name: str) -> None:
        """Make ``name`` forward to the remote peer."""
        self._install(name, RemoteMethod(self._remote_call))

    def unregister(self, name: str) -> bool:
        return self._methods.pop(name, None) is not None

    async def invoke(self, name: str, params: Any = None) -> Any:
        """
        Run the method registered under ``name``.

        Synchronous and asynchronous handlers both surface here as a single
        awaitable; a synchronous raise and an asynchronous failure propagate
        the same way.

        Raises:
            MethodNotFoundError: if nothing is registered under ``name``
        """
        method = self._methods.get(name)
        if method is None:
            raise MethodNotFoundError(name)
        return await method.invoke(name, params)

    def _install(self, name: str, method: Method) -> None:
        if not isinstance(name, str):
            raise TypeError(f"Method name must be a string, got {type(name).__name__}")
        previous = self._methods.get(name)
        if previous is not None:
            logger.warning(f"Replacing method {name!r}: {previous!r} -> {method!r}")
        self._methods[name] = method


class MethodNamespace:
    """
    Attribute access to every registered method.

    ``await peer.methods.add(2, 3)`` runs the local handler or forwards the
    call to the remote peer, whichever is registered under ``add``.
    """

    def __init__(self, registry: MethodRegistry):
        object.__setattr__(self, '_registry', registry)

    def __getattr__(self, name: str) -> Callable[..., Awaitable[Any]]:
        if name.startswith('__') or name not in self._registry:
            raise AttributeError(f"No method registered under {name!r}")
        return self._bind(name)

    def __getitem__(self, name: str) -> Callable[..., Awaitable[Any]]:
        if name not in self._registry:
            raise KeyError(name)
        return self._bind(name)

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("Register methods through the peer, not the namespace")

    def __contains__(self, name: str) -> bool:
        return name in self._registry

    def __iter__(self) -> Iterator[str]:
        return iter(self._registry)

    def __dir__(self):
        return list(self._registry)

    def _bind(self, name: str) -> Callable[..., Awaitable[Any]]:
        registry = self._registry

        def method(*args, **kwargs) -> Awaitable[Any]:
            return registry.invoke(name, pack_params(args, kwargs))

        method.__name__ = name
        return method
