import io
import os
import json
import base64
from decimal import Decimal

from werkzeug.formparser import FormDataParser
from werkzeug.http import parse_options_header

import gallery
import comments
import likes
import guest_session
import photo_filters

MAX_UPLOAD_MB = int(os.environ.get('MAX_UPLOAD_MB', 10))
MAX_UPLOAD_BYTES = MAX_UPLOAD_MB * 1024 * 1024


class DecimalEncoder(json.JSONEncoder):
    def default(self, obj):
        if isinstance(obj, Decimal):
            return int(obj) if obj % 1 == 0 else float(obj)
        return super(DecimalEncoder, self).default(obj)


def cors_response(status_code, body):
    """Return response with CORS headers"""
    return {
        'statusCode': status_code,
        'headers': {
            'Content-Type': 'application/json',
            'Access-Control-Allow-Origin': '*',
            'Access-Control-Allow-Headers': 'Content-Type, Authorization',
            'Access-Control-Allow-Methods': 'GET, POST, DELETE, OPTIONS'
        },
        'body': json.dumps(body, cls=DecimalEncoder)
    }


def error_response(error, operation):
    """Map an exception raised by a route to an error response.

    ValueError -> 400, PermissionError -> 403, LookupError -> 404,
    anything else -> 500 with the underlying message.
    """
    if isinstance(error, ValueError):
        return cors_response(400, {'error': str(error)})
    if isinstance(error, PermissionError):
        return cors_response(403, {'error': str(error)})
    if isinstance(error, LookupError) and not isinstance(error, KeyError):
        return cors_response(404, {'error': str(error)})
    print(f"{operation} failed: {error}")
    return cors_response(500, {'error': f'{operation} failed: {str(error)}'})


def get_headers(event):
    """Request headers with lower-cased names"""
    return {k.lower(): v for k, v in (event.get('headers') or {}).items()}


def get_body_bytes(event):
    """Raw request body, decoding API Gateway's base64 encoding if set"""
    body = event.get('body') or ''
    if event.get('isBase64Encoded'):
        return base64.b64decode(body)
    if isinstance(body, str):
        return body.encode('utf-8')
    return body


def parse_json_body(event):
    body = get_body_bytes(event)
    if not body:
        return {}
    try:
        data = json.loads(body)
    except ValueError:
        raise ValueError('Request body must be valid JSON')
    if not isinstance(data, dict):
        raise ValueError('Request body must be a JSON object')
    return data


def parse_multipart_body(event):
    """Parse a multipart/form-data body.

    Returns:
        tuple: (form, files) werkzeug MultiDicts; files hold FileStorage objects
    """
    content_type = get_headers(event).get('content-type', '')
    mimetype, options = parse_options_header(content_type)
    if mimetype != 'multipart/form-data' or 'boundary' not in options:
        raise ValueError('Expected a multipart/form-data body')

    body = get_body_bytes(event)
    parser = FormDataParser(silent=False)
    _, form, files = parser.parse(io.BytesIO(body), mimetype, len(body), options)
    return form, files


def validate_upload(upload, uploader_name, media_type, filter_id):
    """Validate upload input before anything is stored.

    Returns:
        bytes: The uploaded file content
    """
    if upload is None or not uploader_name:
        raise ValueError('File and uploader name are required')
    if media_type not in gallery.MEDIA_TYPES:
        raise ValueError(f'Invalid type: {media_type} (expected image or audio)')

    file_bytes = upload.read()
    if len(file_bytes) == 0:
        raise ValueError('File is empty')
    if len(file_bytes) > MAX_UPLOAD_BYTES:
        raise ValueError(f'File is too large (max {MAX_UPLOAD_MB} MB)')

    major_type = (upload.mimetype or '').split('/')[0]
    if major_type in gallery.MEDIA_TYPES and major_type != media_type:
        raise ValueError(f'File type {upload.mimetype} does not match type {media_type}')

    if filter_id and not photo_filters.is_valid_filter(filter_id):
        raise ValueError(f'Unknown filter: {filter_id}')

    return file_bytes


def upload_item(event, guest):
    """Handle a multipart upload and return the new gallery item"""
    form, files = parse_multipart_body(event)

    upload = files.get('file')
    uploader_name = (form.get('uploaderName') or '').strip()
    media_type = form.get('type')
    description = (form.get('description') or '').strip() or None
    # Filters only apply to photos
    filter_id = (form.get('filter') or None) if media_type == 'image' else None

    file_bytes = validate_upload(upload, uploader_name, media_type, filter_id)

    return gallery.create_gallery_item(
        file_bytes,
        upload.filename or '',
        upload.mimetype,
        uploader_name,
        media_type,
        description=description,
        filter_id=filter_id,
        browser_id=guest['browserId'] if guest else None
    )


def get_gallery(guest):
    """Get all gallery items split into photos and audio messages"""
    items = gallery.list_gallery_items()
    photos, audio = gallery.partition_by_type(items)

    return {
        'photos': photos,
        'audio': audio,
        'likedItemIds': likes.get_liked_item_ids(guest['browserId']) if guest else [],
        'commentCounts': comments.get_comment_counts()
    }


def delete_item(item_id, guest):
    """Delete a gallery item with its blobs, comments and likes.

    Only the uploader's browser or an admin may delete. Blob and cascade
    failures are logged; the row delete is what makes the item disappear.
    """
    row = gallery.get_gallery_item(item_id)
    if row is None:
        raise LookupError(f'Gallery item not found: {item_id}')
    if not guest_session.can_delete(row, guest):
        raise PermissionError('Only the uploader or an admin can delete this item')

    gallery.delete_gallery_item(row)

    deleted_comments = 0
    deleted_likes = 0
    try:
        deleted_comments = comments.delete_comments_for_item(item_id)
    except Exception as e:
        print(f"Error deleting comments for {item_id}: {e}")
    try:
        deleted_likes = likes.delete_likes_for_item(item_id)
    except Exception as e:
        print(f"Error deleting likes for {item_id}: {e}")

    print(f"Deleted item {item_id} ({deleted_comments} comments, {deleted_likes} likes)")
    return {
        'id': item_id,
        'deletedComments': deleted_comments,
        'deletedLikes': deleted_likes
    }


def lambda_handler(event, context):
    """Main Lambda handler"""

    # Handle OPTIONS for CORS preflight
    http_method = event.get('httpMethod', event.get('requestContext', {}).get('http', {}).get('method', 'GET'))
    if http_method == 'OPTIONS':
        return cors_response(200, {})

    # Get path - handle both API Gateway v1 and v2 formats
    path = event.get('path', event.get('rawPath', '/'))
    # Strip stage prefix (e.g., /prod/) from path
    if path.startswith('/prod/'):
        path = path[5:]
    elif path.startswith('/dev/'):
        path = path[4:]
    # Routes answer with and without the /api prefix
    if path.startswith('/api/'):
        path = path[4:]
    query_params = event.get('queryStringParameters') or {}

    guest = guest_session.get_guest_from_event(event)

    # Liking and deleting need a verified guest identity
    protected_routes = ['/likes', '/items']
    is_protected = any(path == route or path.startswith(route + '/') for route in protected_routes)
    if is_protected and not guest:
        return cors_response(401, {'error': 'Guest session required'})

    try:
        # Route: POST /session - Start or rename a guest session
        if path == '/session' and http_method == 'POST':
            try:
                body = parse_json_body(event)
                result = guest_session.start_session(body.get('name'), current=guest)
                return cors_response(200, {'success': True, **result})
            except Exception as e:
                return error_response(e, 'Session')

        # Route: POST /admin/session - Admin login
        if path == '/admin/session' and http_method == 'POST':
            try:
                body = parse_json_body(event)
                result = guest_session.start_admin_session(body.get('password'), current=guest)
                return cors_response(200, {'success': True, **result})
            except PermissionError as e:
                return cors_response(401, {'error': str(e)})
            except Exception as e:
                return error_response(e, 'Admin login')

        # Route: GET /gallery
        if path == '/gallery' and http_method == 'GET':
            try:
                return cors_response(200, {'success': True, **get_gallery(guest)})
            except Exception as e:
                return error_response(e, 'Gallery')

        # Route: GET /filters
        if path == '/filters' and http_method == 'GET':
            return cors_response(200, {'success': True, 'filters': photo_filters.list_filters()})

        # Route: POST /upload - Multipart upload of a photo or audio message
        if path == '/upload' and http_method == 'POST':
            try:
                item = upload_item(event, guest)
                return cors_response(200, {'success': True, 'item': item})
            except Exception as e:
                return error_response(e, 'Upload')

        # Route: GET /comments?itemId=xxx&itemType=photo
        if path == '/comments' and http_method == 'GET':
            try:
                result = comments.get_comments(query_params.get('itemId'), query_params.get('itemType'))
                return cors_response(200, {'success': True, 'comments': result})
            except Exception as e:
                return error_response(e, 'Fetching comments')

        # Route: POST /comments
        if path == '/comments' and http_method == 'POST':
            try:
                body = parse_json_body(event)
                comment = comments.add_comment(
                    body.get('content'),
                    body.get('username'),
                    body.get('itemId'),
                    body.get('itemType')
                )
                return cors_response(200, {'success': True, 'comment': comment})
            except Exception as e:
                return error_response(e, 'Adding comment')

        # Route: POST /likes - Toggle this browser's like on an item
        if path == '/likes' and http_method == 'POST':
            try:
                body = parse_json_body(event)
                item_id = body.get('itemId')
                result = likes.toggle_like(str(item_id) if item_id else None, guest['browserId'])
                return cors_response(200, {'success': True, **result})
            except Exception as e:
                return error_response(e, 'Like')

        # Route: DELETE /items/{id}
        if path.startswith('/items/') and http_method == 'DELETE':
            try:
                item_id = path.rstrip('/').split('/')[-1]
                if not item_id or item_id == 'items':
                    return cors_response(400, {'error': 'Missing item ID'})

                result = delete_item(item_id, guest)
                return cors_response(200, {'success': True, **result})
            except Exception as e:
                return error_response(e, 'Delete')

        # Default: return 404
        return cors_response(404, {'error': 'Not found', 'path': path})

    except Exception as e:
        return cors_response(500, {'error': str(e)})
