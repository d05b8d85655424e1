from __future__ import annotations
from azure.storage.blob.aio import BlobServiceClient
from pathlib import Path
from urllib.parse import urlparse
import os, re, asyncio

import httpx

_ART_RE = re.compile(r"^azure://([^/]+)/(.+)$")
_cli: BlobServiceClient | None = None


def _connection_string() -> str:
    conn = os.getenv("AZURE_BLOB_CONN")
    if conn:
        return conn
    acc = os.getenv("AZURE_ACCOUNT_NAME")
    key = os.getenv("AZURE_ACCOUNT_KEY")
    if not acc or not key:
        raise RuntimeError("Azure creds missing: set AZURE_ACCOUNT_NAME & AZURE_ACCOUNT_KEY")
    return (
        f"DefaultEndpointsProtocol=https;"
        f"AccountName={acc};"
        f"AccountKey={key};"
        f"EndpointSuffix=core.windows.net"
    )


async def _client() -> BlobServiceClient:
    global _cli
    if not _cli:
        _cli = BlobServiceClient.from_connection_string(_connection_string())
    return _cli


async def _fetch_azure(uri: str) -> bytes:
    m = _ART_RE.match(uri)
    if not m:
        raise ValueError(f"bad artifact URI: {uri}")
    cont, blob = m.groups()
    blob_cli = (await _client()).get_blob_client(cont, blob)
    stream = await blob_cli.download_blob()
    return await stream.readall()


async def _fetch_http(uri: str) -> bytes:
    async with httpx.AsyncClient(follow_redirects=True) as client:
        r = await client.get(uri, timeout=None)
        r.raise_for_status()
        return r.content


async def fetch_artifact(uri: str) -> bytes:
    """Download an artifact from HTTP(S), Azure Blob Storage or the local disk."""
    scheme = urlparse(uri).scheme.lower()
    if scheme == "azure":
        return await _fetch_azure(uri)
    if scheme in ("http", "https"):
        return await _fetch_http(uri)
    if scheme == "file":
        path = Path(urlparse(uri).path)
    elif scheme == "" or len(scheme) == 1:
        # plain path, including Windows drive letters
        path = Path(uri)
    else:
        raise ValueError(f"unsupported artifact scheme: {scheme}")
    return await asyncio.to_thread(path.read_bytes)


async def close() -> None:
    global _cli
    if _cli is not None:
        await _cli.close()
        _cli = None
