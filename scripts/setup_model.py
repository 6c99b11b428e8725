#!/usr/bin/env python3
"""
Download the Portuguese Vosk model used for local recognition.
"""

import argparse
import sys
import urllib.request
import zipfile
from pathlib import Path

from camswitch.utils.config import config

MODEL_BASE_URL = "https://alphacephei.com/vosk/models"


def install_model(target: Path, force: bool = False) -> bool:
    """Fetch and unpack the model so that ``target`` is its directory."""
    if target.is_dir() and any(target.iterdir()) and not force:
        print(f"✅ Model already present at {target}")
        return True

    model_name = target.name
    model_url = f"{MODEL_BASE_URL}/{model_name}.zip"
    zip_path = target.parent / f"{model_name}.zip"
    target.parent.mkdir(parents=True, exist_ok=True)

    print(f"📥 Downloading {model_url}")
    try:
        urllib.request.urlretrieve(model_url, zip_path)
        with zipfile.ZipFile(zip_path) as archive:
            top_level = {name.split("/", 1)[0] for name in archive.namelist()}
            if top_level != {model_name}:
                print(f"❌ Unexpected archive layout: {sorted(top_level)}")
                return False
            archive.extractall(target.parent)
    except (OSError, zipfile.BadZipFile) as e:
        print(f"❌ Error installing model: {e}")
        return False
    finally:
        if zip_path.exists():
            zip_path.unlink()

    print(f"✅ Model extracted to {target}")
    return True


def main():
    parser = argparse.ArgumentParser(description="Install the Vosk model for local recognition")
    parser.add_argument("--path", default=config.MODEL_PATH,
                        help=f"Model directory (default: {config.MODEL_PATH})")
    parser.add_argument("--force", action="store_true", help="Download even if the model exists")
    args = parser.parse_args()

    target = Path(args.path)
    if not install_model(target, args.force):
        sys.exit(1)

    print("\nStart listening with:")
    print(f"   VOSK_MODEL_PATH={target} camswitch run --cameras cameras.json")


if __name__ == "__main__":
    main()
