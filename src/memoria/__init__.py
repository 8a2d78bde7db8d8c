"""Memoria -- Persistent conversation and code memory with relevance-ranked context.

Direct Python API -- no MCP server required::

    import asyncio
    from memoria import MemoryService, MemoriaConfig

    async def demo():
        service = await MemoryService(MemoriaConfig.ephemeral()).start()
        await service.store_message("user", "How do I retry failed uploads?")
        await service.drain()
        print(await service.context("upload retries"))
        await service.close()

    asyncio.run(demo())

For MCP clients run ``memoria serve`` (stdio) or ``memoria serve-http``.
"""

__version__ = "0.4.0"

from memoria.config import MemoriaConfig, StorageMode
from memoria.errors import ConfigurationError, MemoriaError, NotFound, TransientStoreError
from memoria.fingerprint import cosine_similarity, decode_vector, embed, encode_vector
from memoria.service import MemoryService, get_service, reset_service

__all__ = [
    "MemoryService",
    "MemoriaConfig",
    "StorageMode",
    "get_service",
    "reset_service",
    # Fingerprints
    "embed",
    "encode_vector",
    "decode_vector",
    "cosine_similarity",
    # Errors
    "MemoriaError",
    "ConfigurationError",
    "NotFound",
    "TransientStoreError",
]
