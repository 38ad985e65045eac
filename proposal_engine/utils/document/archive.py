"""
In-memory ZIP expansion for proposal bundles.

Only entries whose extension maps to a proposal format are returned; every
other entry (README files, images, spreadsheets, ...) is skipped silently.
Nested archives are not opened.
"""

import io
import asyncio
import zlib
import zipfile
import posixpath
from dataclasses import dataclass
from typing import List
from proposal_engine.utils.core.log import get_logger
from proposal_engine.utils.core.errors import UnreadableArchive
from proposal_engine.utils.document.doc import PDF_MIME, DOCX_MIME, MAX_UPLOAD_BYTES

ZIP_MIME_TYPES = {
    "application/zip",
    "application/x-zip-compressed",
    "multipart/x-zip",
}

# TXT is accepted as a direct upload but not from inside a bundle.
ARCHIVE_EXTENSION_TO_MIME = {
    ".pdf": PDF_MIME,
    ".docx": DOCX_MIME,
}


@dataclass(frozen=True)
class ArchiveEntry:
    filename: str
    buffer: bytes
    mime_type: str
    size: int = 0  # uncompressed size declared in the ZIP directory

    @property
    def oversized(self) -> bool:
        return self.size > MAX_UPLOAD_BYTES


def is_zip_upload(filename: str, mime_type: str | None) -> bool:
    return (mime_type or "").lower() in ZIP_MIME_TYPES or (filename or "").lower().endswith(".zip")


def mime_from_extension(filename: str) -> str | None:
    return ARCHIVE_EXTENSION_TO_MIME.get(posixpath.splitext(filename.lower())[1])


def _is_macos_metadata(name: str) -> bool:
    parts = name.split("/")
    return "__MACOSX" in parts or parts[-1].startswith("._")


def expand_archive(buffer: bytes, archive_name: str = "archive.zip") -> List[ArchiveEntry]:
    logger = get_logger()
    entries: List[ArchiveEntry] = []

    try:
        with zipfile.ZipFile(io.BytesIO(buffer), "r") as zip_ref:
            for info in zip_ref.infolist():
                if info.is_dir():
                    continue

                name = info.filename.replace("\\", "/")
                if _is_macos_metadata(name):
                    continue

                mime_type = mime_from_extension(name)
                if not mime_type:
                    logger.debug(f"Skipping unsupported archive entry: {name}")
                    continue

                filename = posixpath.basename(name)
                if info.file_size > MAX_UPLOAD_BYTES:
                    # left compressed; the document fails on its size later
                    logger.debug(f"Not reading oversized archive entry: {name} ({info.file_size} bytes)")
                    entries.append(ArchiveEntry(filename, b"", mime_type, info.file_size))
                    continue

                entries.append(
                    ArchiveEntry(
                        filename=filename,
                        buffer=zip_ref.read(info),
                        mime_type=mime_type,
                        size=info.file_size,
                    )
                )
    except zipfile.BadZipFile as e:
        logger.debug(f"Bad zip file: {archive_name}")
        raise UnreadableArchive(archive_name) from e
    except (zipfile.LargeZipFile, zlib.error, EOFError, NotImplementedError, RuntimeError, OSError) as e:
        logger.debug(f"Error extracting {archive_name}: {e}")
        raise UnreadableArchive(archive_name, f"Extraction error: {e}") from e

    logger.debug(f"Expanded {archive_name}: {len(entries)} proposal file(s)")
    return entries


async def expand_archive_async(buffer: bytes, archive_name: str = "archive.zip") -> List[ArchiveEntry]:
    return await asyncio.to_thread(expand_archive, buffer, archive_name)
