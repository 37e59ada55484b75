"""
Multipart Adapter — Streams aiohttp multipart body parts into encrypted items.

Each body part becomes one item created by the factory; part content is
written through the item's encrypting sink chunk by chunk, so plaintext is
never spooled anywhere unencrypted. Once an item has spilled to disk its
chunks are written from a worker thread so disk I/O stays off the event loop.
"""
import asyncio
import logging
from typing import Any

from aiohttp import MultipartReader, hdrs, web

from .factory import EncryptedFileItemFactory
from .item import EncryptedFileItem

logger = logging.getLogger("encrypted_upload")


async def _store_part(part: Any, factory: EncryptedFileItemFactory) -> EncryptedFileItem:
    """Create an item for ``part`` and copy its content into it."""
    file_name = part.filename
    item = factory.create_item(
        part.name,
        part.headers.get(hdrs.CONTENT_TYPE),
        file_name is None,
        file_name,
    )
    item.headers = part.headers
    try:
        with item.get_output_stream() as sink:
            while True:
                chunk = await part.read_chunk()
                if not chunk:
                    break
                if item.is_in_memory():
                    sink.write(chunk)
                else:
                    await asyncio.to_thread(sink.write, chunk)
    except BaseException:
        item.delete()
        raise
    return item


async def parse_multipart(
    reader: MultipartReader,
    factory: EncryptedFileItemFactory,
) -> list[EncryptedFileItem]:
    """Read every part from ``reader`` into factory-created items.

    Nested multipart bodies are flattened into the returned list.

    Args:
        reader: aiohttp multipart reader positioned at the first part.
        factory: Factory used to create one item per part.

    Returns:
        Items in the order their parts appeared.

    Raises:
        Any error raised while reading; items created so far are deleted.
    """
    items: list[EncryptedFileItem] = []
    try:
        await _collect(reader, factory, items)
    except BaseException:
        for item in items:
            item.delete()
        raise
    logger.debug("Parsed %d multipart item(s)", len(items))
    return items


async def _collect(
    reader: MultipartReader,
    factory: EncryptedFileItemFactory,
    items: list[EncryptedFileItem],
) -> None:
    while True:
        part = await reader.next()
        if part is None:
            break
        if isinstance(part, MultipartReader):
            await _collect(part, factory, items)
        else:
            items.append(await _store_part(part, factory))


async def parse_request(
    request: web.Request,
    factory: EncryptedFileItemFactory,
) -> list[EncryptedFileItem]:
    """Parse the multipart body of an aiohttp request into encrypted items."""
    reader = await request.multipart()
    return await parse_multipart(reader, factory)
