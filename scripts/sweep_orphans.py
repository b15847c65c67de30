#!/usr/bin/env python3
"""
Sweep script for gallery data that lost its counterpart.

Finds and deletes:
  - blobs under gallery/ that no gallery row references (left behind when
    a row insert failed after the upload)
  - comment and like rows whose gallery item no longer exists

Blobs younger than --min-age-minutes are kept, since an upload in flight
writes its blob before its row.

Usage:
    python sweep_orphans.py [--dry-run] [--min-age-minutes 60]
"""

import os
import sys
import argparse
from datetime import datetime, timedelta, timezone
from pathlib import Path

from dotenv import load_dotenv

env_path = Path(__file__).parent.parent / '.env'
if env_path.exists():
    load_dotenv(env_path)

os.environ.setdefault('AWS_DEFAULT_REGION', os.getenv('AWS_REGION', 'us-east-1'))
sys.path.insert(0, str(Path(__file__).parent.parent / 'lambda'))

import gallery
import comments
import likes


def referenced_blob_keys(items):
    """S3 keys referenced by gallery items (content and filtered copy)."""
    keys = set()
    for item in items:
        for url in (item.get('content'), item.get('filteredContent')):
            if not url:
                continue
            try:
                keys.add(gallery.blob_key_from_url(url))
            except ValueError:
                print(f"  Skipping unparseable URL on {item['id']}: {url}")
    return keys


def list_blobs():
    """All objects under the gallery prefix as (key, last_modified)."""
    paginator = gallery.s3.get_paginator('list_objects_v2')
    blobs = []
    for page in paginator.paginate(Bucket=gallery.MEDIA_BUCKET, Prefix=gallery.MEDIA_PREFIX):
        for obj in page.get('Contents', []):
            blobs.append((obj['Key'], obj['LastModified']))
    return blobs


def find_orphan_blobs(blobs, referenced, cutoff):
    """Keys of blobs not referenced by any item and older than cutoff."""
    return [key for key, modified in blobs if key not in referenced and modified < cutoff]


def scan_keys(table):
    """(pk, sk) of every row in a comments/likes table."""
    response = table.scan(ProjectionExpression='pk, sk')
    rows = response.get('Items', [])

    # Handle pagination
    while 'LastEvaluatedKey' in response:
        response = table.scan(ProjectionExpression='pk, sk', ExclusiveStartKey=response['LastEvaluatedKey'])
        rows.extend(response.get('Items', []))

    return [(row['pk'], row.get('sk', '')) for row in rows]


def item_ids_from_keys(keys):
    """Item ids of rows keyed ITEM#<id>."""
    return {pk.replace('ITEM#', '', 1) for pk, _ in keys if pk.startswith('ITEM#')}


def find_orphan_browser_rows(keys, gallery_item_ids):
    """Browser rows (BROWSER#<id> / ITEM#<id>) of likes whose item is gone."""
    return [
        {'pk': pk, 'sk': sk} for pk, sk in keys
        if pk.startswith('BROWSER#') and sk.replace('ITEM#', '', 1) not in gallery_item_ids
    ]


def find_orphan_item_ids(table_item_ids, gallery_item_ids):
    return sorted(table_item_ids - gallery_item_ids)


def sweep(dry_run=False, min_age_minutes=60):
    print("Loading gallery items...")
    items = gallery.list_gallery_items()
    item_ids = {item['id'] for item in items}
    print(f"Found {len(items)} gallery items")

    cutoff = datetime.now(timezone.utc) - timedelta(minutes=min_age_minutes)
    orphan_blobs = find_orphan_blobs(list_blobs(), referenced_blob_keys(items), cutoff)
    print(f"\nOrphan blobs: {len(orphan_blobs)}")
    for key in orphan_blobs:
        print(f"  {key}")
        if not dry_run:
            gallery.s3.delete_object(Bucket=gallery.MEDIA_BUCKET, Key=key)

    orphan_comment_items = find_orphan_item_ids(item_ids_from_keys(scan_keys(comments.comments_table)), item_ids)
    print(f"\nItems with orphan comments: {len(orphan_comment_items)}")
    deleted_comments = 0
    for item_id in orphan_comment_items:
        print(f"  {item_id}")
        if not dry_run:
            deleted_comments += comments.delete_comments_for_item(item_id)

    like_keys = scan_keys(likes.likes_table)
    orphan_like_items = find_orphan_item_ids(item_ids_from_keys(like_keys), item_ids)
    print(f"\nItems with orphan likes: {len(orphan_like_items)}")
    deleted_likes = 0
    for item_id in orphan_like_items:
        print(f"  {item_id}")
        if not dry_run:
            deleted_likes += likes.delete_likes_for_item(item_id)

    # Browser rows left behind without their like row
    stray_browser_rows = [
        key for key in find_orphan_browser_rows(like_keys, item_ids)
        if key['sk'].replace('ITEM#', '', 1) not in orphan_like_items
    ]
    print(f"\nStray browser like rows: {len(stray_browser_rows)}")
    for key in stray_browser_rows:
        print(f"  {key['pk']} {key['sk']}")
        if not dry_run:
            likes.likes_table.delete_item(Key=key)

    print(f"\nSweep complete{' (dry run, nothing deleted)' if dry_run else ''}!")
    print(f"  Blobs: {len(orphan_blobs)}")
    print(f"  Comments: {deleted_comments}")
    print(f"  Likes: {deleted_likes}")

    return {
        'blobs': orphan_blobs,
        'commentItems': orphan_comment_items,
        'likeItems': orphan_like_items,
        'browserRows': stray_browser_rows,
    }


def main():
    parser = argparse.ArgumentParser(description='Delete gallery blobs, comments and likes without an item')
    parser.add_argument('--dry-run', action='store_true', help='Only report what would be deleted')
    parser.add_argument(
        '--min-age-minutes',
        type=int,
        default=60,
        help='Keep unreferenced blobs younger than this (default: 60)'
    )
    args = parser.parse_args()

    sweep(dry_run=args.dry_run, min_age_minutes=args.min_age_minutes)


if __name__ == '__main__':
    main()
