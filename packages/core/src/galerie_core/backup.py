"""Whole-site backup archives.

An archive is a gzip'd tar holding a single ``galerie-backup/`` folder::

    galerie-backup/data.json   every table, ordered by id
    galerie-backup/uploads/    a copy of the uploads directory

Import validates the entire archive before touching anything, replaces the
database content in one transaction, then swaps the uploads directory. If
the swap fails the previous uploads directory is put back.
"""
from __future__ import annotations

import io
import json
import logging
import os
import shutil
import tarfile
import tempfile
import threading
import time
import zlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from sqlalchemy import insert, text
from sqlalchemy.exc import SQLAlchemyError

from galerie_core.config import Settings
from galerie_core.db import Database
from galerie_core.defaults import (
    DEFAULT_ACCENT_COLOR,
    DEFAULT_MESSAGE_SUBJECT,
    DEFAULT_PALETTE,
    DEFAULT_PHOTO_TITLE,
    DEFAULT_SETTINGS,
)
from galerie_core.errors import ArchiveFormatError, BackupBusyError, BackupRestoreError
from galerie_core.media import MediaStore, normalize_public_path
from galerie_core.models import (
    Category,
    ContactMessage,
    Experience,
    Photo,
    SiteSettings,
    StudioInsight,
    utc_timestamp,
)
from galerie_core.repository import parse_int, resolve_hero_image_url
from galerie_core.slugs import unique_slug

logger = logging.getLogger("galerie_core.backup")

ARCHIVE_ROOT = "galerie-backup"
# Root folder written by the previous version of the site.
LEGACY_ARCHIVE_ROOTS = ("cecilartiste-backup",)
DATA_FILE = "data.json"
UPLOADS_FOLDER = "uploads"
FORMAT_VERSION = 1

# Tables emptied by an import; their AUTOINCREMENT counters are reset too.
CLEARED_TABLES = ("photos", "categories", "experiences", "studio_insights", "contact_messages")

# One backup operation at a time per process.
_backup_lock = threading.Lock()


def export_filename(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"galerie-backup-{now.strftime('%Y%m%d-%H%M%S')}.tar.gz"


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _text(value) -> str:
    return "" if value is None else str(value).strip()


def _position(value) -> int:
    parsed = parse_int(value)
    return parsed if parsed is not None else 0


def _timestamp(value) -> str:
    return _text(value) or utc_timestamp()


@dataclass
class ImportPlan:
    categories: List[Dict[str, Any]] = field(default_factory=list)
    photos: List[Dict[str, Any]] = field(default_factory=list)
    experiences: List[Dict[str, Any]] = field(default_factory=list)
    studio_insights: List[Dict[str, Any]] = field(default_factory=list)
    messages: List[Dict[str, Any]] = field(default_factory=list)
    settings: Optional[Dict[str, Any]] = None
    orphaned_photos: int = 0


@dataclass
class ImportSummary:
    categories: int
    photos: int
    experiences: int
    studio_insights: int
    messages: int
    settings_restored: bool
    orphaned_photos: int = 0


class BackupCodec:
    """Exports and restores the full dataset (database rows and uploads)."""

    def __init__(self, database: Database, media: MediaStore, settings: Optional[Settings] = None):
        self.database = database
        self.media = media
        settings = settings or Settings()
        self.max_bytes = settings.max_backup_bytes
        self.max_extracted_bytes = settings.max_backup_extracted_bytes

    # ---- Export ----

    def collect_data(self) -> Dict[str, Any]:
        with self.database.session() as session:
            def rows(model):
                return [item.to_dict() for item in session.query(model).order_by(model.id.asc())]

            settings_row = session.get(SiteSettings, 1)
            settings = {}
            if settings_row is not None:
                settings = {key: getattr(settings_row, key) for key in DEFAULT_SETTINGS}
            return {
                "version": FORMAT_VERSION,
                "generated_at": _iso_now(),
                "photos": rows(Photo),
                "categories": rows(Category),
                "experiences": rows(Experience),
                "studio_insights": rows(StudioInsight),
                "settings": settings,
                "messages": rows(ContactMessage),
            }

    def export_backup(self) -> bytes:
        """Build the archive and return it as ``tar.gz`` bytes."""
        with _backup_lock:
            staging = Path(tempfile.mkdtemp(prefix="galerie-export-"))
            try:
                data = self.collect_data()
                root = staging / ARCHIVE_ROOT
                root.mkdir()
                (root / DATA_FILE).write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
                uploads = root / UPLOADS_FOLDER
                if self.media.root.is_dir():
                    shutil.copytree(self.media.root, uploads, ignore=shutil.ignore_patterns(".*.part"))
                else:
                    uploads.mkdir()
                buffer = io.BytesIO()
                with tarfile.open(fileobj=buffer, mode="w:gz") as tf:
                    tf.add(root, arcname=ARCHIVE_ROOT)
                payload = buffer.getvalue()
            finally:
                shutil.rmtree(staging, ignore_errors=True)
        logger.info(
            "backup.export ok bytes=%d photos=%d categories=%d",
            len(payload), len(data["photos"]), len(data["categories"]),
        )
        return payload

    # ---- Import ----

    def import_backup(self, data: bytes) -> ImportSummary:
        """Replace the whole dataset with the content of archive *data*.

        Raises :class:`ArchiveFormatError` (nothing changed),
        :class:`BackupBusyError` (another import is running) or
        :class:`BackupRestoreError` (database or uploads swap failed).
        """
        if not data:
            raise ArchiveFormatError("Merci de sélectionner un fichier de sauvegarde.")
        if len(data) > self.max_bytes:
            raise ArchiveFormatError("Le fichier de sauvegarde est trop volumineux.")
        if not _backup_lock.acquire(blocking=False):
            logger.warning("backup.import busy")
            raise BackupBusyError("Une restauration est déjà en cours. Merci de patienter.")
        try:
            workdir = Path(tempfile.mkdtemp(prefix="galerie-import-"))
            try:
                root = self._extract(data, workdir)
                plan = self.build_plan(self._read_payload(root))
                self._replace_rows(plan)
                self._swap_uploads(root / UPLOADS_FOLDER)
            finally:
                shutil.rmtree(workdir, ignore_errors=True)
        finally:
            _backup_lock.release()
        summary = ImportSummary(
            categories=len(plan.categories),
            photos=len(plan.photos),
            experiences=len(plan.experiences),
            studio_insights=len(plan.studio_insights),
            messages=len(plan.messages),
            settings_restored=plan.settings is not None,
            orphaned_photos=plan.orphaned_photos,
        )
        logger.info(
            "backup.import ok photos=%d categories=%d experiences=%d insights=%d messages=%d orphaned=%d",
            summary.photos, summary.categories, summary.experiences,
            summary.studio_insights, summary.messages, summary.orphaned_photos,
        )
        return summary

    def _extract(self, data: bytes, workdir: Path) -> Path:
        try:
            with tarfile.open(fileobj=io.BytesIO(data), mode="r:gz") as tf:
                members = tf.getmembers()
                total = sum(member.size for member in members if member.isfile())
                if total > self.max_extracted_bytes:
                    logger.warning(
                        "backup.import oversized archive extracted_bytes=%d limit=%d", total, self.max_extracted_bytes
                    )
                    raise ArchiveFormatError("Le contenu de la sauvegarde est trop volumineux.")
                tf.extractall(workdir, members=members, filter="data")
        except (tarfile.TarError, OSError, EOFError, zlib.error) as exc:
            logger.warning("backup.import unreadable archive: %s", exc)
            raise ArchiveFormatError("Le fichier fourni n'est pas une archive de sauvegarde valide.") from exc
        root = next(
            (workdir / name for name in (ARCHIVE_ROOT,) + LEGACY_ARCHIVE_ROOTS if (workdir / name).is_dir()),
            None,
        )
        if root is None:
            raise ArchiveFormatError(f"Le dossier {ARCHIVE_ROOT} est introuvable dans l'archive.")
        if not (root / DATA_FILE).is_file():
            raise ArchiveFormatError(f"Le fichier {DATA_FILE} est introuvable dans l'archive.")
        return root

    @staticmethod
    def _read_payload(root: Path) -> Dict[str, Any]:
        try:
            payload = json.loads((root / DATA_FILE).read_text(encoding="utf-8"))
        except (ValueError, UnicodeDecodeError) as exc:
            raise ArchiveFormatError(f"Le fichier {DATA_FILE} est illisible.") from exc
        if not isinstance(payload, dict):
            raise ArchiveFormatError("La sauvegarde fournie est invalide.")
        version = payload.get("version")
        if isinstance(version, bool) or version != FORMAT_VERSION:
            raise ArchiveFormatError(f"Version de sauvegarde non prise en charge : {version!r}.")
        return payload

    @staticmethod
    def _records(payload: Dict[str, Any], key: str) -> List[Dict[str, Any]]:
        value = payload.get(key)
        if value is None:
            return []
        if not isinstance(value, list) or not all(isinstance(item, dict) for item in value):
            raise ArchiveFormatError(f"La section « {key} » de la sauvegarde est invalide.")
        return value

    @staticmethod
    def _ids(records: List[Dict[str, Any]], label: str) -> List[int]:
        ids = []
        seen = set()
        for record in records:
            raw = record.get("id")
            parsed = None if isinstance(raw, bool) else parse_int(raw)
            if parsed is None or parsed <= 0:
                raise ArchiveFormatError(f"Identifiant invalide rencontré dans la sauvegarde ({label}).")
            if parsed in seen:
                raise ArchiveFormatError(f"Identifiant en double dans la sauvegarde ({label} {parsed}).")
            seen.add(parsed)
            ids.append(parsed)
        return ids

    def build_plan(self, payload: Dict[str, Any]) -> ImportPlan:
        """Validate and normalize every record of *payload*.

        Nothing is written here; any invalid record raises
        :class:`ArchiveFormatError`.
        """
        plan = ImportPlan()

        categories = self._records(payload, "categories")
        taken_slugs = set()
        for category_id, record in zip(self._ids(categories, "catégorie"), categories):
            name = _text(record.get("name"))
            if not name:
                raise ArchiveFormatError("Une catégorie de la sauvegarde ne possède pas de nom.")
            slug = _text(record.get("slug"))
            if not slug or slug in taken_slugs:
                slug = unique_slug(name, taken_slugs)
            taken_slugs.add(slug)
            plan.categories.append({
                "id": category_id,
                "name": name,
                "description": _text(record.get("description")) or None,
                "hero_image_path": normalize_public_path(record.get("hero_image_path")),
                "position": _position(record.get("position")),
                "slug": slug,
                "created_at": _timestamp(record.get("created_at")),
            })
        category_ids = {row["id"] for row in plan.categories}

        photos = self._records(payload, "photos")
        for photo_id, record in zip(self._ids(photos, "photo"), photos):
            image_path = normalize_public_path(record.get("image_path"))
            if not image_path:
                raise ArchiveFormatError("Une photo de la sauvegarde ne contient pas de chemin d'image.")
            category_id = parse_int(record.get("category_id"))
            if category_id is not None and category_id not in category_ids:
                logger.warning("backup.import dangling category photo_id=%s category_id=%s", photo_id, category_id)
                plan.orphaned_photos += 1
                category_id = None
            plan.photos.append({
                "id": photo_id,
                "title": _text(record.get("title")) or DEFAULT_PHOTO_TITLE,
                "description": _text(record.get("description")) or None,
                "image_path": image_path,
                "palette": _text(record.get("palette")) or DEFAULT_PALETTE,
                "accent_color": _text(record.get("accent_color")) or DEFAULT_ACCENT_COLOR,
                "category_id": category_id,
                "created_at": _timestamp(record.get("created_at")),
            })

        experiences = self._records(payload, "experiences")
        for experience_id, record in zip(self._ids(experiences, "expérience"), experiences):
            title = _text(record.get("title"))
            description = _text(record.get("description"))
            if not title or not description:
                raise ArchiveFormatError("Une expérience de la sauvegarde est incomplète.")
            plan.experiences.append({
                "id": experience_id,
                "title": title,
                "description": description,
                "icon": _text(record.get("icon")) or None,
                "image_path": normalize_public_path(record.get("image_path")),
                "position": _position(record.get("position")),
                "created_at": _timestamp(record.get("created_at")),
            })

        insights = self._records(payload, "studio_insights")
        for insight_id, record in zip(self._ids(insights, "statistique"), insights):
            plan.studio_insights.append({
                "id": insight_id,
                "stat_value": _text(record.get("stat_value")),
                "stat_caption": _text(record.get("stat_caption")),
                "data_count": max(_position(record.get("data_count")), 0),
                "position": _position(record.get("position")),
                "created_at": _timestamp(record.get("created_at")),
            })

        messages = self._records(payload, "messages")
        for message_id, record in zip(self._ids(messages, "message"), messages):
            plan.messages.append({
                "id": message_id,
                "name": _text(record.get("name")),
                "email": _text(record.get("email")),
                "subject": _text(record.get("subject")) or DEFAULT_MESSAGE_SUBJECT,
                "message": "" if record.get("message") is None else str(record.get("message")),
                "created_at": _timestamp(record.get("created_at")),
            })

        settings = payload.get("settings")
        if settings is not None and not isinstance(settings, dict):
            raise ArchiveFormatError("La section « settings » de la sauvegarde est invalide.")
        if settings:
            restored = {key: _text(settings.get(key)) or default for key, default in DEFAULT_SETTINGS.items()}
            restored["hero_intro_image_url"] = resolve_hero_image_url(restored["hero_intro_image_url"])
            plan.settings = {"id": 1, **restored}
        return plan

    def _replace_rows(self, plan: ImportPlan) -> None:
        try:
            with self.database.transaction() as session:
                for model in (Photo, Category, Experience, StudioInsight, ContactMessage):
                    session.query(model).delete(synchronize_session=False)
                if plan.settings is not None:
                    session.query(SiteSettings).delete(synchronize_session=False)
                if session.get_bind().dialect.name == "sqlite":
                    names = ", ".join(f"'{name}'" for name in CLEARED_TABLES)
                    session.execute(text(f"DELETE FROM sqlite_sequence WHERE name IN ({names})"))
                # Categories before photos so the foreign keys resolve.
                for model, rows in (
                    (Category, plan.categories),
                    (Photo, plan.photos),
                    (Experience, plan.experiences),
                    (StudioInsight, plan.studio_insights),
                    (ContactMessage, plan.messages),
                ):
                    if rows:
                        session.execute(insert(model.__table__), rows)
                if plan.settings is not None:
                    session.execute(insert(SiteSettings.__table__), [plan.settings])
        except SQLAlchemyError as exc:
            logger.error("backup.import database restore failed", exc_info=True)
            raise BackupRestoreError("La restauration de la base de données a échoué.") from exc

    @staticmethod
    def _copy_uploads(source: Path, target: Path) -> None:
        shutil.copytree(source, target, dirs_exist_ok=True)

    def _swap_uploads(self, source: Path) -> None:
        live = self.media.root
        live.parent.mkdir(parents=True, exist_ok=True)
        previous = None
        if live.exists():
            previous = live.parent / f"{live.name}-backup-{int(time.time() * 1000)}"
            os.rename(live, previous)
        try:
            live.mkdir(parents=True, exist_ok=True)
            if source.is_dir():
                self._copy_uploads(source, live)
        except OSError as exc:
            logger.error("backup.import uploads swap failed; restoring previous uploads", exc_info=True)
            shutil.rmtree(live, ignore_errors=True)
            if previous is not None and previous.exists():
                try:
                    os.rename(previous, live)
                except OSError:
                    logger.critical(
                        "backup.import could not restore uploads; previous files kept at %s", previous, exc_info=True
                    )
            raise BackupRestoreError("La restauration des fichiers téléversés a échoué.") from exc
        if previous is not None:
            shutil.rmtree(previous, ignore_errors=True)


__all__ = [
    "ARCHIVE_ROOT",
    "LEGACY_ARCHIVE_ROOTS",
    "DATA_FILE",
    "FORMAT_VERSION",
    "BackupCodec",
    "ImportPlan",
    "ImportSummary",
    "export_filename",
]
