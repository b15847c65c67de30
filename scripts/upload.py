#!/usr/bin/env python3
"""
Wedding Gallery - Batch Import Script

This script imports photos and audio messages from a local folder into the
gallery: each file is stored in the media bucket and gets a gallery row,
exactly as if a guest had uploaded it through the site.

Usage:
    python upload.py /path/to/folder --uploader "Ayse & Mehmet" [--filter clarendon]

Requirements:
    pip install boto3 pillow python-dotenv
"""

import os
import sys
import argparse
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from .env file
env_path = Path(__file__).parent.parent / '.env'
if env_path.exists():
    load_dotenv(env_path)

# Configuration
REGION = os.getenv('AWS_REGION', 'us-east-1')
MAX_UPLOAD_MB = int(os.getenv('MAX_UPLOAD_MB', 10))
os.environ.setdefault('AWS_DEFAULT_REGION', REGION)

# The Lambda modules own the storage layout; reuse them so imported items
# look the same as uploaded ones.
sys.path.insert(0, str(Path(__file__).parent.parent / 'lambda'))

try:
    import gallery
    import photo_filters
except ImportError as e:
    print(f"Error: {e}. Install the requirements with: pip install boto3 pillow")
    sys.exit(1)

CONTENT_TYPES = {
    '.jpg': 'image/jpeg',
    '.jpeg': 'image/jpeg',
    '.png': 'image/png',
    '.gif': 'image/gif',
    '.webp': 'image/webp',
    '.heic': 'image/heic',
    '.wav': 'audio/wav',
    '.mp3': 'audio/mpeg',
    '.m4a': 'audio/mp4',
    '.ogg': 'audio/ogg',
    '.webm': 'audio/webm',
}


def media_type_for(path: Path) -> Optional[str]:
    """'image' or 'audio' for supported files, else None."""
    content_type = CONTENT_TYPES.get(path.suffix.lower())
    if content_type is None:
        return None
    return content_type.split('/')[0]


class GalleryImporter:
    def __init__(self, uploader_name: str, filter_id: Optional[str] = None,
                 description: Optional[str] = None, dry_run: bool = False):
        self.uploader_name = uploader_name
        self.filter_id = filter_id
        self.description = description
        self.dry_run = dry_run

    def find_files(self, folder_path: Path) -> list:
        """Supported media files in the folder, sorted by name (hidden files skipped)."""
        files = [
            f for f in folder_path.iterdir()
            if f.is_file() and not f.name.startswith('.') and media_type_for(f)
        ]
        files.sort(key=lambda x: x.name.lower())
        return files

    def import_file(self, path: Path) -> Optional[dict]:
        """Store one file and insert its gallery row."""
        media_type = media_type_for(path)
        size = path.stat().st_size
        if size == 0:
            print("SKIPPED (empty)")
            return None
        if size > MAX_UPLOAD_MB * 1024 * 1024:
            print(f"SKIPPED (over {MAX_UPLOAD_MB} MB)")
            return None
        if self.dry_run:
            print(f"OK (dry run, {media_type})")
            return None

        item = gallery.create_gallery_item(
            path.read_bytes(),
            path.name,
            CONTENT_TYPES[path.suffix.lower()],
            self.uploader_name,
            media_type,
            description=self.description,
            filter_id=self.filter_id if media_type == 'image' else None,
        )
        print(f"OK ({item['id']})")
        return item

    def import_folder(self, folder_path: Path) -> dict:
        """Import all supported files from a folder."""
        if not folder_path.exists():
            print(f"Error: Folder does not exist: {folder_path}")
            return {'success': False, 'error': 'Folder not found'}

        if not folder_path.is_dir():
            print(f"Error: Path is not a directory: {folder_path}")
            return {'success': False, 'error': 'Not a directory'}

        files = self.find_files(folder_path)
        if not files:
            print(f"No supported photos or audio found in: {folder_path}")
            return {'success': False, 'error': 'No media found'}

        print(f"\nImporting {len(files)} files as {self.uploader_name}")
        print("-" * 50)

        imported = []
        for idx, path in enumerate(files, 1):
            print(f"[{idx}/{len(files)}] {path.name}...", end=' ')
            try:
                item = self.import_file(path)
            except Exception as e:
                print(f"FAILED ({e})")
                continue
            if item:
                imported.append(item)

        print("-" * 50)
        print(f"Imported {len(imported)}/{len(files)} files")

        return {
            'success': True,
            'imported': len(imported),
            'total': len(files),
        }


def main():
    parser = argparse.ArgumentParser(
        description='Import photos and audio messages from a folder into the wedding gallery'
    )
    parser.add_argument(
        'folder',
        type=str,
        help='Path to the folder containing photos and audio'
    )
    parser.add_argument(
        '--uploader', '-u',
        type=str,
        required=True,
        help='Uploader name shown on every imported item'
    )
    parser.add_argument(
        '--filter', '-f',
        type=str,
        default=photo_filters.DEFAULT_FILTER,
        choices=sorted(photo_filters.FILTERS),
        help='Filter applied to imported photos (default: normal)'
    )
    parser.add_argument(
        '--description', '-d',
        type=str,
        help='Description stored on every imported item'
    )
    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='List what would be imported without storing anything'
    )

    args = parser.parse_args()

    uploader_name = args.uploader.strip()
    if not uploader_name:
        parser.error('--uploader cannot be blank')

    folder_path = Path(args.folder).expanduser().resolve()

    importer = GalleryImporter(uploader_name, args.filter, args.description, args.dry_run)
    result = importer.import_folder(folder_path)
    if not result['success']:
        sys.exit(1)


if __name__ == '__main__':
    main()
