"""Bring the data directory up: bundled assets, vocabularies and models."""

from __future__ import annotations

import argparse
import logging
import shutil
from pathlib import Path
from typing import Iterable, Optional

from registry import (
    ENGLISH_ONLY_MODEL,
    ENGLISH_ONLY_VOCAB_FILE,
    MULTI_LINGUAL_MODEL_FAST,
    MULTI_LINGUAL_MODEL_SLOW,
    MULTILINGUAL_VOCAB_FILE,
)

try:
    import huggingface_hub
except Exception:  # pragma: no cover
    huggingface_hub = None  # type: ignore

logger = logging.getLogger(__name__)

EXTENSIONS_TO_COPY = ("json",)
BUNDLED_ASSETS_DIR = Path(__file__).resolve().parent / "assets"

# Whisper tokenizers published with the reference checkpoints.
VOCAB_REPOS = {
    MULTILINGUAL_VOCAB_FILE: "openai/whisper-tiny",
    ENGLISH_ONLY_VOCAB_FILE: "openai/whisper-tiny.en",
}
MODEL_REPOS = {
    MULTI_LINGUAL_MODEL_SLOW: "Systran/faster-whisper-small",
    MULTI_LINGUAL_MODEL_FAST: "Systran/faster-whisper-base",
    ENGLISH_ONLY_MODEL: "Systran/faster-whisper-tiny.en",
}


def install_assets(
    dest_dir: Path,
    source_dir: Path = BUNDLED_ASSETS_DIR,
    extensions: Iterable[str] = EXTENSIONS_TO_COPY,
) -> list[Path]:
    """Copy allow-listed bundled files into ``dest_dir``.

    A file already present with the same size is left alone; one whose size
    differs from the bundled copy is replaced. Failures are logged and never
    raised, so the app starts with whatever is already installed.

    Returns the destination paths that were written.
    """
    suffixes = tuple("." + ext.lstrip(".") for ext in extensions)
    copied: list[Path] = []
    try:
        dest_dir.mkdir(parents=True, exist_ok=True)
        sources = sorted(source_dir.iterdir())
    except OSError as exc:
        logger.warning("Asset setup skipped (%s -> %s): %s", source_dir, dest_dir, exc)
        return copied

    for source in sources:
        if not source.is_file() or not source.name.endswith(suffixes):
            continue
        target = dest_dir / source.name
        try:
            if target.exists() and target.stat().st_size == source.stat().st_size:
                continue
            shutil.copyfile(source, target)
        except OSError as exc:
            logger.error("Failed to copy asset %s: %s", source.name, exc)
            continue
        logger.info("Installed asset %s", target)
        copied.append(target)
    return copied


def missing_vocabularies(data_dir: Path) -> list[str]:
    return [name for name in VOCAB_REPOS if not (data_dir / name).is_file()]


def fetch_assets(data_dir: Path, model_names: Iterable[str] = ()) -> tuple[list[Path], list[str]]:
    """Download missing vocabularies and the given models into ``data_dir``.

    This is the only step that touches the network; loading and inference
    stay offline. Returns the installed paths and the names that failed.
    """
    if huggingface_hub is None:
        raise RuntimeError("huggingface_hub is not installed")
    data_dir.mkdir(parents=True, exist_ok=True)
    installed: list[Path] = []
    failed: list[str] = []

    for vocab_name in missing_vocabularies(data_dir):
        repo = VOCAB_REPOS[vocab_name]
        try:
            cached = huggingface_hub.hf_hub_download(repo, "tokenizer.json")
            shutil.copyfile(cached, data_dir / vocab_name)
        except Exception as exc:
            logger.error("Fetching %s from %s failed: %s", vocab_name, repo, exc)
            failed.append(vocab_name)
            continue
        logger.info("Installed vocabulary %s from %s", vocab_name, repo)
        installed.append(data_dir / vocab_name)

    for model_name in model_names:
        target = data_dir / model_name
        if target.is_dir():
            continue
        repo = MODEL_REPOS.get(model_name)
        if repo is None:
            logger.error("No download source known for %s", model_name)
            failed.append(model_name)
            continue
        try:
            huggingface_hub.snapshot_download(repo, local_dir=str(target))
        except Exception as exc:
            logger.error("Fetching %s from %s failed: %s", model_name, repo, exc)
            failed.append(model_name)
            continue
        logger.info("Installed model %s from %s", model_name, repo)
        installed.append(target)
    return installed, failed


def fetch_main(argv: Optional[list[str]] = None) -> int:
    from config import JsonConfigStore

    parser = argparse.ArgumentParser(
        prog="whisper-ime-fetch",
        description="Download Whisper vocabularies and models for offline use.",
    )
    parser.add_argument("models", nargs="*", help="model names (default: the selected model)")
    parser.add_argument("--data-dir", type=Path, default=None)
    parser.add_argument("--all", action="store_true", help="fetch every known model")
    args = parser.parse_args(argv)

    store = JsonConfigStore()
    logging.basicConfig(
        level=str(store.get("log_level")).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    data_dir = args.data_dir or store.get_data_dir()
    models = list(MODEL_REPOS) if args.all else (args.models or [store.get_model_name()])

    install_assets(data_dir)
    _, failed = fetch_assets(data_dir, models)
    return 1 if failed else 0


if __name__ == "__main__":
    raise SystemExit(fetch_main())
