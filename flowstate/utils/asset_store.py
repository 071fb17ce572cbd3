"""Persistence of captures and their assets."""

import json
import shutil
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from ..core.constants import CAPTURES_DIR_NAME
from ..models.capture import Asset, Capture
from ..services.exceptions import AssetNotFoundError


class AssetStore(Protocol):
    """Read access to captures, as used by the restore path."""

    def get_capture(self, capture_id: str) -> Optional[Capture]:
        ...

    def list_captures(self) -> List[Capture]:
        ...

    def get_assets(self, capture_id: str) -> List[Asset]:
        ...

    def get_asset(self, asset_id: str) -> Asset:
        ...


class JsonAssetStore:
    """Stores captures as a JSON registry plus one assets file per capture."""

    def __init__(self, data_dir: Path):
        """Initialize the store.

        Args:
            data_dir: The FlowState data directory
        """
        self.captures_dir = Path(data_dir) / CAPTURES_DIR_NAME
        self.registry_file = self.captures_dir / "registry.json"
        self._ensure_storage_structure()

    def _ensure_storage_structure(self) -> None:
        self.captures_dir.mkdir(parents=True, exist_ok=True)
        if not self.registry_file.exists():
            self._save_registry({})

    def _load_registry(self) -> Dict[str, Any]:
        try:
            with open(self.registry_file) as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid capture registry file: {e}")

    def _save_registry(self, registry: Dict[str, Any]) -> None:
        with open(self.registry_file, 'w') as f:
            json.dump(registry, f, indent=2, sort_keys=True)

    def _assets_file(self, capture_id: str) -> Path:
        return self.captures_dir / capture_id / "assets.json"

    def create_capture(self, name: str, records: List[Dict[str, Any]],
                       context_summary: Optional[str] = None) -> Capture:
        """Store a new capture.

        Args:
            name: Display name of the capture
            records: Asset fields without ``id`` and ``capture_id``

        Returns:
            The created Capture
        """
        capture = Capture(
            id=uuid.uuid4().hex[:12],
            name=name,
            created_at=datetime.now().isoformat(),
            context_summary=context_summary,
        )
        assets = [
            Asset.from_record({**record, "id": uuid.uuid4().hex[:12], "capture_id": capture.id})
            for record in records
        ]

        capture_dir = self.captures_dir / capture.id
        capture_dir.mkdir(parents=True, exist_ok=True)
        with open(self._assets_file(capture.id), 'w') as f:
            json.dump([asset.model_dump(mode="json") for asset in assets], f, indent=2)

        registry = self._load_registry()
        registry[capture.id] = capture.model_dump(mode="json")
        self._save_registry(registry)
        return capture

    def delete_capture(self, capture_id: str) -> bool:
        """Remove a capture and its assets. Returns True if it existed."""
        registry = self._load_registry()
        if capture_id not in registry:
            return False
        del registry[capture_id]
        self._save_registry(registry)
        shutil.rmtree(self.captures_dir / capture_id, ignore_errors=True)
        return True

    def get_capture(self, capture_id: str) -> Optional[Capture]:
        data = self._load_registry().get(capture_id)
        return Capture.model_validate(data) if data else None

    def list_captures(self) -> List[Capture]:
        """List captures, newest first."""
        captures = [Capture.model_validate(data) for data in self._load_registry().values()]
        return sorted(captures, key=lambda capture: capture.created_at, reverse=True)

    def get_assets(self, capture_id: str) -> List[Asset]:
        """Load the assets of a capture in stored order.

        Raises:
            AssetNotFoundError: If the capture does not exist
        """
        assets_file = self._assets_file(capture_id)
        if not assets_file.exists():
            raise AssetNotFoundError(f"Capture {capture_id} not found")
        try:
            with open(assets_file) as f:
                records = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid assets file for capture {capture_id}: {e}")
        return [Asset.from_record(record) for record in records]

    def get_asset(self, asset_id: str) -> Asset:
        """Find an asset by id across all captures.

        Raises:
            AssetNotFoundError: If no capture holds the asset
        """
        for capture_id in self._load_registry():
            if not self._assets_file(capture_id).exists():
                continue
            for asset in self.get_assets(capture_id):
                if asset.id == asset_id:
                    return asset
        raise AssetNotFoundError(f"Asset {asset_id} not found")
