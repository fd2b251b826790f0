"""Artifact storage for audit inputs and reports.

Reports are written as JSON together with the SHA256 of the exact bytes on
disk, so a stored audit can be checked before it is reused as evidence.
"""

import hashlib
import json
from datetime import datetime
from pathlib import Path
from typing import Any, List, Type, TypeVar

from pydantic import BaseModel

from core.observability.logging import get_logger
from models.refs import DataReference

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class ArtifactIntegrityError(ValueError):
    """Stored bytes no longer match the hash recorded in their reference."""


def _sha256(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def _encode(obj: Any) -> bytes:
    if isinstance(obj, BaseModel):
        obj = obj.model_dump(mode="json", by_alias=True)
    return json.dumps(obj, indent=2, ensure_ascii=False).encode("utf-8")


def put_json(obj: Any, path: Path) -> DataReference:
    """Write `obj` (dict, list or pydantic model, dumped by alias) to `path`.

    Parent directories are created as needed.
    """
    payload = _encode(obj)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(payload)

    ref = DataReference(
        storage_uri=str(path.absolute()),
        content_hash=_sha256(payload),
        size_bytes=len(payload),
        stored_at=datetime.utcnow(),
    )
    logger.debug("Artifact stored", extra_fields={"path": ref.storage_uri, "bytes": ref.size_bytes})
    return ref


def get_json(ref: DataReference, validate_hash: bool = True) -> Any:
    """Load the artifact behind `ref`.

    Raises:
        FileNotFoundError: the file was removed
        ArtifactIntegrityError: the content changed since it was stored
    """
    path = Path(ref.storage_uri)
    if not path.is_file():
        raise FileNotFoundError(f"Artifact not found: {ref.storage_uri}")

    payload = path.read_bytes()
    if validate_hash and _sha256(payload) != ref.content_hash:
        raise ArtifactIntegrityError(f"Content of {ref.storage_uri} does not match {ref.content_hash}")
    return json.loads(payload)


def read_json(path: Path) -> Any:
    """Read an input JSON file (bill, findings, contract) without a reference."""
    return json.loads(Path(path).read_text(encoding="utf-8"))


def load_model(path: Path, model: Type[ModelT]) -> ModelT:
    return model.model_validate(read_json(path))


def load_models(path: Path, model: Type[ModelT]) -> List[ModelT]:
    """Load a JSON list of models. A top-level object with a single list value is unwrapped."""
    data = read_json(path)
    if isinstance(data, dict):
        lists = [v for v in data.values() if isinstance(v, list)]
        data = lists[0] if len(lists) == 1 else []
    return [model.model_validate(entry) for entry in data]
