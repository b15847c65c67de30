"""
Pytest fixtures and configuration for Lambda unit tests
"""

import os
import sys
import base64
import pytest
from decimal import Decimal

from botocore.exceptions import ClientError

# Add lambda directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Set environment variables before importing modules
# AWS_DEFAULT_REGION must be set before boto3 initializes
os.environ['AWS_DEFAULT_REGION'] = 'us-east-1'
os.environ['AWS_REGION'] = 'us-east-1'
os.environ['GALLERY_TABLE'] = 'TestGalleryItems'
os.environ['COMMENTS_TABLE'] = 'TestGalleryComments'
os.environ['LIKES_TABLE'] = 'TestGalleryLikes'
os.environ['MEDIA_BUCKET'] = 'test-media-bucket'
os.environ['CLOUDFRONT_DOMAIN'] = 'test.cloudfront.net'
os.environ['SESSION_SECRET'] = 'test-session-secret'
os.environ['ADMIN_PASSWORD'] = 'test-admin-password'
os.environ['MAX_UPLOAD_MB'] = '1'

BOUNDARY = '----galleryTestBoundary'


@pytest.fixture
def conditional_check_failed():
    """Factory for the ClientError DynamoDB raises when a condition fails"""
    def _make(operation='PutItem'):
        return ClientError(
            {'Error': {'Code': 'ConditionalCheckFailedException', 'Message': 'The conditional request failed'}},
            operation
        )
    return _make


@pytest.fixture
def sample_item():
    """Sample gallery photo row"""
    return {
        'pk': 'GALLERY',
        'sk': 'ITEM#20240615183000-abcd1234',
        'id': '20240615183000-abcd1234',
        'type': 'image',
        'content': 'https://test.cloudfront.net/gallery/1718476200000-a1b2c3d4e5f6.jpg',
        'uploaderName': 'Ayse',
        'uploadDate': '2024-06-15T18:30:00Z',
        'description': 'First dance',
        'filter': 'clarendon',
        'contentType': 'image/jpeg',
        'size': Decimal(2048),
        'likes': Decimal(3),
        'browserId': 'browser_owner0000000001'
    }


@pytest.fixture
def sample_audio_item():
    """Sample gallery audio message row"""
    return {
        'pk': 'GALLERY',
        'sk': 'ITEM#20240615190000-ef567890',
        'id': '20240615190000-ef567890',
        'type': 'audio',
        'content': 'https://test.cloudfront.net/gallery/1718478000000-0f1e2d3c4b5a.wav',
        'uploaderName': 'Mehmet',
        'uploadDate': '2024-06-15T19:00:00Z',
        'contentType': 'audio/wav',
        'size': Decimal(4096),
        'likes': Decimal(0)
    }


@pytest.fixture
def guest():
    """A verified, non-admin guest session"""
    return {'browserId': 'browser_guest00000000002', 'name': 'Zeynep', 'admin': False}


@pytest.fixture
def owner():
    """Guest session of the browser that uploaded sample_item"""
    return {'browserId': 'browser_owner0000000001', 'name': 'Ayse', 'admin': False}


@pytest.fixture
def admin():
    return {'browserId': 'browser_admin00000000003', 'name': 'admin', 'admin': True}


@pytest.fixture
def auth_headers():
    """Factory for an Authorization header carrying a signed guest token"""
    def _make(session):
        import guest_session
        token = guest_session._issue(session)['token']
        return {'Authorization': f'Bearer {token}'}
    return _make


@pytest.fixture
def sample_image_bytes():
    """Create a simple test image as bytes"""
    from io import BytesIO
    from PIL import Image

    # Create a simple 100x100 red image
    img = Image.new('RGB', (100, 100), color='red')
    buffer = BytesIO()
    img.save(buffer, format='JPEG')
    buffer.seek(0)
    return buffer.getvalue()


@pytest.fixture
def multipart_event():
    """Factory for a base64-encoded multipart/form-data API Gateway event"""
    def _make(fields, file=None, headers=None, path='/api/upload'):
        parts = []
        for name, value in fields.items():
            parts.append(
                f'--{BOUNDARY}\r\n'
                f'Content-Disposition: form-data; name="{name}"\r\n\r\n'
                f'{value}\r\n'.encode('utf-8')
            )
        if file is not None:
            filename, content_type, data = file
            parts.append(
                f'--{BOUNDARY}\r\n'
                f'Content-Disposition: form-data; name="file"; filename="{filename}"\r\n'
                f'Content-Type: {content_type}\r\n\r\n'.encode('utf-8') + data + b'\r\n'
            )
        parts.append(f'--{BOUNDARY}--\r\n'.encode('utf-8'))

        return {
            'httpMethod': 'POST',
            'path': path,
            'queryStringParameters': None,
            'headers': {
                'Content-Type': f'multipart/form-data; boundary={BOUNDARY}',
                **(headers or {})
            },
            'body': base64.b64encode(b''.join(parts)).decode('ascii'),
            'isBase64Encoded': True
        }
    return _make
