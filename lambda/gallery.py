"""
Gallery Storage Module

Stores uploaded photos and audio messages in S3 and their metadata in the
GalleryItems DynamoDB table. Also holds the two counter procedures used by
the like toggler (increment_likes / decrement_likes).

Table layout:
    pk = 'GALLERY', sk = 'ITEM#<id>'
Item ids start with a UTC timestamp so a descending query lists newest first.
"""

import os
import time
import uuid
import secrets
from datetime import datetime
from urllib.parse import urlparse

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError

import photo_filters

# Initialize AWS clients
s3 = boto3.client('s3')
dynamodb = boto3.resource('dynamodb')

# Configuration
GALLERY_TABLE_NAME = os.environ.get('GALLERY_TABLE', 'GalleryItems')
MEDIA_BUCKET = os.environ.get('MEDIA_BUCKET', 'wedding-gallery-media')
CLOUDFRONT_DOMAIN = os.environ.get('CLOUDFRONT_DOMAIN', '')
AWS_REGION = os.environ.get('AWS_REGION', os.environ.get('AWS_DEFAULT_REGION', 'us-east-1'))

gallery_table = dynamodb.Table(GALLERY_TABLE_NAME)

GALLERY_PK = 'GALLERY'
MEDIA_PREFIX = 'gallery/'
FILTERED_PREFIX = 'gallery/filtered/'
MEDIA_TYPES = ('image', 'audio')
DEFAULT_EXTENSIONS = {'image': 'jpg', 'audio': 'wav'}


def item_key(item_id):
    return {'pk': GALLERY_PK, 'sk': f'ITEM#{item_id}'}


def generate_item_id():
    """Generate a time-sortable unique ID for gallery items"""
    return f"{datetime.utcnow().strftime('%Y%m%d%H%M%S')}-{uuid.uuid4().hex[:8]}"


def generate_file_name(original_filename, media_type):
    """Build a collision-resistant blob name: <epoch ms>-<random>.<ext>

    The extension is taken from the original file name; files without one
    get the default for their media type.
    """
    ext = original_filename.rsplit('.', 1)[-1] if original_filename and '.' in original_filename else ''
    ext = ''.join(c for c in ext.lower() if c.isalnum())
    if not ext:
        ext = DEFAULT_EXTENSIONS.get(media_type, 'bin')
    return f"{int(time.time() * 1000)}-{secrets.token_hex(6)}.{ext}"


def public_url(s3_key):
    """Public URL for a stored blob (CloudFront if configured, else S3)"""
    if CLOUDFRONT_DOMAIN:
        return f"https://{CLOUDFRONT_DOMAIN}/{s3_key}"
    return f"https://{MEDIA_BUCKET}.s3.{AWS_REGION}.amazonaws.com/{s3_key}"


def blob_key_from_url(url):
    """Recover the S3 key of a blob from its public URL"""
    key = urlparse(url).path.lstrip('/')
    if not key:
        raise ValueError(f'No file name in URL: {url}')
    return key


def ensure_bucket_exists():
    """Create the media bucket if it doesn't exist.

    Returns:
        bool: True if the bucket was created by this call
    """
    try:
        s3.head_bucket(Bucket=MEDIA_BUCKET)
        return False
    except ClientError as e:
        if e.response.get('Error', {}).get('Code') not in ('404', 'NoSuchBucket', 'NotFound'):
            raise

    print(f"Bucket not found, creating: {MEDIA_BUCKET}")
    if AWS_REGION == 'us-east-1':
        s3.create_bucket(Bucket=MEDIA_BUCKET)
    else:
        s3.create_bucket(
            Bucket=MEDIA_BUCKET,
            CreateBucketConfiguration={'LocationConstraint': AWS_REGION}
        )
    return True


def format_item(row):
    """Convert a table row to the API shape (drops key attributes)"""
    return {
        'id': row['id'],
        'type': row.get('type'),
        'content': row.get('content'),
        'filteredContent': row.get('filteredContent'),
        'uploaderName': row.get('uploaderName'),
        'uploadDate': row.get('uploadDate'),
        'description': row.get('description'),
        'filter': row.get('filter'),
        'likes': int(row.get('likes', 0) or 0),
    }


def store_filtered_copy(file_bytes, file_name, filter_id):
    """Render and upload a filtered copy of a photo.

    Best effort: returns the public URL, or None if the photo could not be
    decoded or uploaded.
    """
    try:
        filtered = photo_filters.render_filtered_jpeg(file_bytes, filter_id)
        s3_key = f"{FILTERED_PREFIX}{file_name.rsplit('.', 1)[0]}.jpg"
        s3.put_object(
            Bucket=MEDIA_BUCKET,
            Key=s3_key,
            Body=filtered,
            ContentType='image/jpeg'
        )
        return public_url(s3_key)
    except Exception as e:
        print(f"Filtered copy skipped for {file_name} ({filter_id}): {e}")
        return None


def create_gallery_item(file_bytes, filename, content_type, uploader_name, media_type,
                        description=None, filter_id=None, browser_id=None):
    """Store an uploaded file and insert its gallery row.

    Input must already be validated. A failure after the blob upload leaves
    the blob in place (see scripts/sweep_orphans.py).
    """
    ensure_bucket_exists()

    file_name = generate_file_name(filename, media_type)
    s3_key = f"{MEDIA_PREFIX}{file_name}"

    s3.put_object(
        Bucket=MEDIA_BUCKET,
        Key=s3_key,
        Body=file_bytes,
        ContentType=content_type or 'application/octet-stream'
    )
    content_url = public_url(s3_key)
    print(f"Stored upload: {s3_key} ({len(file_bytes)} bytes)")

    filtered_url = None
    if media_type == 'image' and filter_id and filter_id != photo_filters.DEFAULT_FILTER:
        filtered_url = store_filtered_copy(file_bytes, file_name, filter_id)

    item_id = generate_item_id()
    row = {
        **item_key(item_id),
        'id': item_id,
        'type': media_type,
        'content': content_url,
        'uploaderName': uploader_name,
        'uploadDate': datetime.utcnow().isoformat() + 'Z',
        'contentType': content_type,
        'size': len(file_bytes),
        'likes': 0,
    }
    # Optional attributes are only written when set
    if description:
        row['description'] = description
    if filter_id:
        row['filter'] = filter_id
    if filtered_url:
        row['filteredContent'] = filtered_url
    if browser_id:
        row['browserId'] = browser_id

    gallery_table.put_item(Item=row)
    return format_item(row)


def get_gallery_item(item_id):
    """Get a raw gallery row, or None if it doesn't exist"""
    response = gallery_table.get_item(Key=item_key(item_id))
    return response.get('Item')


def list_gallery_items():
    """Get all gallery items, newest first"""
    response = gallery_table.query(
        KeyConditionExpression=Key('pk').eq(GALLERY_PK) & Key('sk').begins_with('ITEM#'),
        ScanIndexForward=False
    )
    rows = response.get('Items', [])

    # Handle pagination
    while 'LastEvaluatedKey' in response:
        response = gallery_table.query(
            KeyConditionExpression=Key('pk').eq(GALLERY_PK) & Key('sk').begins_with('ITEM#'),
            ScanIndexForward=False,
            ExclusiveStartKey=response['LastEvaluatedKey']
        )
        rows.extend(response.get('Items', []))

    return [format_item(row) for row in rows]


def partition_by_type(items):
    """Split formatted items into (photos, audio)"""
    photos = [item for item in items if item['type'] == 'image']
    audio = [item for item in items if item['type'] == 'audio']
    return photos, audio


def delete_blob(url):
    """Best-effort delete of the blob behind a public URL.

    Returns:
        bool: True if the delete call succeeded
    """
    try:
        s3.delete_object(Bucket=MEDIA_BUCKET, Key=blob_key_from_url(url))
        return True
    except Exception as e:
        print(f"Error deleting blob {url}: {e}")
        return False


def delete_gallery_item(row):
    """Delete an item's blobs (best effort) and then its row"""
    for url in (row.get('content'), row.get('filteredContent')):
        if url:
            delete_blob(url)

    gallery_table.delete_item(Key=item_key(row['id']))


def increment_likes(item_id):
    """Atomically add one like to an item's counter.

    Returns:
        int: The counter value after the update

    Raises:
        LookupError: if the item doesn't exist
    """
    try:
        response = gallery_table.update_item(
            Key=item_key(item_id),
            UpdateExpression='SET likes = if_not_exists(likes, :zero) + :one',
            ConditionExpression='attribute_exists(pk)',
            ExpressionAttributeValues={':zero': 0, ':one': 1},
            ReturnValues='UPDATED_NEW'
        )
    except ClientError as e:
        if e.response.get('Error', {}).get('Code') == 'ConditionalCheckFailedException':
            raise LookupError(f'Gallery item not found: {item_id}')
        raise
    return int(response['Attributes']['likes'])


def decrement_likes(item_id):
    """Atomically remove one like from an item's counter, clamped at zero.

    Returns:
        int: The counter value after the update
    """
    try:
        response = gallery_table.update_item(
            Key=item_key(item_id),
            UpdateExpression='SET likes = likes - :one',
            ConditionExpression='attribute_exists(pk) AND likes > :zero',
            ExpressionAttributeValues={':zero': 0, ':one': 1},
            ReturnValues='UPDATED_NEW'
        )
    except ClientError as e:
        if e.response.get('Error', {}).get('Code') == 'ConditionalCheckFailedException':
            # Already at zero (or item gone); the counter never goes negative
            return 0
        raise
    return int(response['Attributes']['likes'])
