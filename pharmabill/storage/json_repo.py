from __future__ import annotations

import logging
import os
import re
import shutil
import tempfile
import threading
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Union

from pharmabill.errors import StorageError

logger = logging.getLogger(__name__)

_KEY_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


class JsonKeyValueStore:
    """
    Stockage clé -> texte brut, un fichier <clé>.json par clé dans `data_dir`.
    - N'écrit pas si le contenu ne change pas (réduction du bruit et des .bak)
    - Rotation de backups (backup_enabled, backup_keep)
    - Écriture atomique (fichier temporaire puis remplacement)
    """

    def __init__(
        self,
        data_dir: Union[str, Path],
        *,
        backup_enabled: bool = True,
        backup_keep: int = 5,
    ) -> None:
        self.data_dir = Path(data_dir)
        self.backup_enabled = backup_enabled
        self.backup_keep = max(0, int(backup_keep))
        self._lock = threading.Lock()
        self.data_dir.mkdir(parents=True, exist_ok=True)

    # ---------------- chemins ---------------- #

    def path_for(self, key: str) -> Path:
        if not _KEY_RE.match(key):
            raise ValueError(f"invalid storage key {key!r}")
        return self.data_dir / f"{key}.json"

    # ---------------- lecture ---------------- #

    def get(self, key: str) -> Optional[str]:
        path = self.path_for(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def keys(self) -> List[str]:
        return sorted(
            p.stem for p in self.data_dir.glob("*.json")
            if not p.name.endswith((".bak.json", ".corrupt.json"))
        )

    def set_aside_corrupt(self, key: str) -> None:
        """Copie un contenu illisible à côté (<clé>.corrupt.json) avant qu'il soit écrasé."""
        path = self.path_for(key)
        if not path.exists():
            return
        try:
            shutil.copy2(path, path.with_suffix(".corrupt.json"))
        except OSError as e:
            logger.warning("Could not keep a copy of corrupt %s: %s", path.name, e)

    # ---------------- écriture ---------------- #

    def _rotate_backups(self, path: Path) -> None:
        if not self.backup_enabled or self.backup_keep <= 0:
            return
        files = sorted(self.data_dir.glob(f"{path.stem}.*.bak.json"))
        # garde les plus récents
        for old in files[: max(0, len(files) - self.backup_keep)]:
            try:
                old.unlink(missing_ok=True)
            except OSError as e:
                logger.warning("Could not remove old backup %s: %s", old.name, e)

    def _backup(self, path: Path) -> None:
        if not self.backup_enabled or not path.exists():
            return
        ts = datetime.now().strftime("%Y%m%d-%H%M%S-%f")
        try:
            shutil.copy2(path, path.with_suffix(f".{ts}.bak.json"))
        except OSError as e:
            logger.warning("Backup of %s failed: %s", path.name, e)
            return
        self._rotate_backups(path)

    def set(self, key: str, raw: str) -> None:
        path = self.path_for(key)
        with self._lock:
            # si contenu identique → ne rien faire
            if path.exists():
                try:
                    if path.read_text(encoding="utf-8") == raw:
                        return
                except OSError:
                    pass

            self._backup(path)
            tmp = None
            try:
                fd, tmp = tempfile.mkstemp(dir=self.data_dir, prefix=f".{key}.", suffix=".tmp")
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(raw)
                os.replace(tmp, path)
            except OSError as e:
                logger.error("Write of %s failed: %s", path.name, e)
                if tmp and os.path.exists(tmp):
                    os.unlink(tmp)
                raise StorageError(f"could not write {key}: {e}") from e

    def delete(self, key: str) -> bool:
        path = self.path_for(key)
        with self._lock:
            if not path.exists():
                return False
            self._backup(path)
            try:
                path.unlink()
            except OSError as e:
                logger.error("Delete of %s failed: %s", path.name, e)
                raise StorageError(f"could not delete {key}: {e}") from e
            return True
