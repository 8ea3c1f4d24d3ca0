"""
Archive fetcher: pulls LiPD archives from lipdverse (or a local path) and
loads them into a LiPD collection.

Sources accepted by load_archive():
  - http(s) URL of a .zip bundle or a single .lpd file (downloaded and cached)
  - local .zip bundle (unpacked to <data_dir>/lipd/<stem>-<source key>/)
  - local .lpd file
  - local directory containing .lpd files

Downloads are cached under <data_dir>/archives/. Parsing the LiPD files is
delegated to pylipd.
"""

import hashlib
import logging
import zipfile
from pathlib import Path
from urllib.parse import urlparse

import requests

import config

logger = logging.getLogger("ch2k-explorer")

LIPD_SUFFIX = ".lpd"


def is_url(source) -> bool:
    """True if *source* is an http(s) URL."""
    return urlparse(str(source)).scheme in ("http", "https")


def source_key(source) -> str:
    """Short digest identifying a source.

    URLs are keyed on the URL itself. Local paths are keyed on the resolved
    absolute path plus size and modification time, so a replaced file (or a
    different file with the same name) gets a different key.

    Raises:
        FileNotFoundError: If a local source does not exist.
    """
    if is_url(source):
        ident = str(source)
    else:
        path = Path(source).expanduser().resolve()
        stat = path.stat()
        ident = f"{path}|{stat.st_size}|{stat.st_mtime_ns}"
    return hashlib.sha256(ident.encode("utf-8")).hexdigest()[:12]


def _url_to_local_path(url: str, cache_dir: Path) -> Path:
    """Resolve an archive URL to its local cache path."""
    name = Path(urlparse(url).path).name or "archive.zip"
    return cache_dir / name


def download_archive(url: str, cache_dir: Path | None = None, force: bool = False) -> Path:
    """Download an archive, using the local cache if available.

    Args:
        url: Full URL to the .zip or .lpd file.
        cache_dir: Local directory for cached files (default <data_dir>/archives).
        force: Re-download even when a cached copy exists.

    Returns:
        Path to the local file.

    Raises:
        requests.HTTPError: If the download fails.
    """
    cache_dir = Path(cache_dir) if cache_dir is not None else config.get_data_dir() / "archives"
    local_path = _url_to_local_path(url, cache_dir)

    if not force and local_path.exists() and local_path.stat().st_size > 0:
        logger.debug(f"[Fetch] Cache hit: {local_path}")
        return local_path

    logger.info(f"[Fetch] Downloading: {url}")
    local_path.parent.mkdir(parents=True, exist_ok=True)

    resp = requests.get(url, timeout=config.HTTP_TIMEOUT)
    resp.raise_for_status()

    local_path.write_bytes(resp.content)
    size_mb = len(resp.content) / (1024 * 1024)
    logger.debug(f"[Fetch] Downloaded {size_mb:.1f} MB -> {local_path}")

    return local_path


def unpack_archive(zip_path: Path, dest_dir: Path | None = None, force: bool = False) -> list[Path]:
    """Extract the .lpd members of a zip bundle.

    Member directories are flattened so every file lands directly in
    *dest_dir*.

    Args:
        zip_path: Path to the .zip bundle.
        dest_dir: Extraction directory (default
            <data_dir>/lipd/<zip stem>-<source key>).
        force: Re-extract even if *dest_dir* already holds .lpd files.

    Returns:
        Sorted list of extracted .lpd paths.

    Raises:
        zipfile.BadZipFile: If *zip_path* is not a zip file.
        ValueError: If the bundle contains no .lpd files.
    """
    zip_path = Path(zip_path)
    if dest_dir is None:
        dest_dir = config.get_data_dir() / "lipd" / f"{zip_path.stem}-{source_key(zip_path)}"
    dest_dir = Path(dest_dir)

    existing = sorted(dest_dir.glob(f"*{LIPD_SUFFIX}")) if dest_dir.is_dir() else []
    if existing and not force:
        logger.debug(f"[Fetch] Using {len(existing)} unpacked files in {dest_dir}")
        return existing

    extracted = []
    with zipfile.ZipFile(zip_path) as zf:
        for info in zf.infolist():
            if info.is_dir():
                continue
            name = Path(info.filename).name
            # skip macOS resource forks and anything that isn't a LiPD file
            if not name.endswith(LIPD_SUFFIX) or name.startswith("._"):
                continue
            target = dest_dir / name
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(zf.read(info))
            extracted.append(target)

    if not extracted:
        raise ValueError(f"No {LIPD_SUFFIX} files found in archive {zip_path}")

    logger.info(f"[Fetch] Unpacked {len(extracted)} LiPD files -> {dest_dir}")
    return sorted(extracted)


def resolve_lipd_files(source, force: bool = False) -> list[Path]:
    """Turn a source (URL, .zip, .lpd or directory) into local .lpd paths.

    Raises:
        FileNotFoundError: If a local source does not exist.
        ValueError: If the source holds no LiPD files or has an unknown type.
    """
    if is_url(source):
        source = download_archive(str(source), force=force)

    path = Path(source).expanduser()
    if not path.exists():
        raise FileNotFoundError(f"Archive source not found: {path}")

    if path.is_dir():
        files = sorted(path.glob(f"*{LIPD_SUFFIX}"))
        if not files:
            raise ValueError(f"No {LIPD_SUFFIX} files found in directory {path}")
        return files

    suffix = path.suffix.lower()
    if suffix == ".zip":
        return unpack_archive(path, force=force)
    if suffix == LIPD_SUFFIX:
        return [path]
    raise ValueError(
        f"Unsupported archive type '{suffix}' for {path}. "
        f"Expected a .zip bundle, a {LIPD_SUFFIX} file or a directory."
    )


def _new_collection():
    """Create an empty pylipd collection (pylipd is imported lazily, it is slow to import)."""
    from pylipd.lipd import LiPD

    return LiPD()


def load_archive(source=None, force: bool = False):
    """Load a whole archive into a LiPD collection-of-records object.

    Args:
        source: URL or local path; defaults to ``config.ARCHIVE_URL``.
        force: Re-download / re-unpack instead of using cached copies.

    Returns:
        A ``pylipd.lipd.LiPD`` collection.

    Raises:
        ValueError: If no dataset could be loaded from the source.
    """
    if source is None:
        source = config.ARCHIVE_URL
    files = resolve_lipd_files(source, force=force)

    logger.info(f"[Fetch] Loading {len(files)} LiPD files from {source}")
    collection = _new_collection()
    collection.load([str(f) for f in files])

    names = list_datasets(collection)
    if not names:
        raise ValueError(f"No datasets could be loaded from {source}")
    logger.info(f"[Fetch] Loaded {len(names)} datasets")
    return collection


def list_datasets(collection) -> list[str]:
    """Dataset names held by a LiPD collection."""
    return list(collection.get_all_dataset_names())
