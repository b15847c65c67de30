"""
Guest Session Module

Wedding guests don't have accounts. Instead the API issues a signed guest
token holding a browser id and a display name; the admin flag is only set
after the server-side admin password check. Tokens are sent back as
`Authorization: Bearer <token>`.
"""

import os
import hmac
import secrets

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

SESSION_SECRET = os.environ.get('SESSION_SECRET', '')
SESSION_MAX_AGE = int(os.environ.get('SESSION_MAX_AGE_DAYS', 30)) * 24 * 3600
ADMIN_PASSWORD = os.environ.get('ADMIN_PASSWORD', '')

MAX_NAME_LENGTH = 100

SESSION_SALT = 'guest-session'


def generate_browser_id():
    return f"browser_{secrets.token_hex(8)}"


def _serializer():
    # Sessions are disabled until a secret is configured
    if not SESSION_SECRET:
        return None
    return URLSafeTimedSerializer(SESSION_SECRET, salt=SESSION_SALT)


def _issue(guest):
    serializer = _serializer()
    if serializer is None:
        raise PermissionError('Guest sessions are disabled (SESSION_SECRET is not set)')
    token = serializer.dumps({
        'browserId': guest['browserId'],
        'name': guest['name'],
        'admin': bool(guest.get('admin')),
    })
    return {
        'token': token,
        'browserId': guest['browserId'],
        'name': guest['name'],
        'admin': bool(guest.get('admin')),
    }


def verify_token(token):
    """Decode a guest token.

    Returns:
        dict or None: {'browserId', 'name', 'admin'} for a valid, unexpired token
    """
    serializer = _serializer()
    if not token or serializer is None:
        return None
    try:
        data = serializer.loads(token, max_age=SESSION_MAX_AGE)
    except (SignatureExpired, BadSignature):
        return None
    if not isinstance(data, dict) or not data.get('browserId'):
        return None
    return {
        'browserId': data['browserId'],
        'name': data.get('name', ''),
        'admin': bool(data.get('admin')),
    }


def get_guest_from_event(event):
    """Extract the guest session from the Authorization header of an API Gateway event"""
    headers = event.get('headers') or {}
    auth_header = headers.get('Authorization') or headers.get('authorization') or ''
    if not auth_header.startswith('Bearer '):
        return None
    return verify_token(auth_header[len('Bearer '):].strip())


def start_session(name, current=None):
    """Issue a guest token for a display name.

    An existing session keeps its browser id (and admin flag), so renaming
    doesn't lose the guest's likes or uploads.
    """
    name = str(name or '').strip()
    if not name:
        raise ValueError('Missing name')
    if len(name) > MAX_NAME_LENGTH:
        raise ValueError(f'Name is too long (max {MAX_NAME_LENGTH} characters)')

    return _issue({
        'browserId': current['browserId'] if current else generate_browser_id(),
        'name': name,
        'admin': current['admin'] if current else False,
    })


def start_admin_session(password, current=None):
    """Issue an admin token if the password matches ADMIN_PASSWORD.

    Raises:
        PermissionError: wrong password, or admin login not configured
    """
    if not ADMIN_PASSWORD:
        raise PermissionError('Admin login is disabled')
    if not password or not hmac.compare_digest(str(password).encode(), ADMIN_PASSWORD.encode()):
        raise PermissionError('Wrong password')

    return _issue({
        'browserId': current['browserId'] if current else generate_browser_id(),
        'name': current['name'] if current else 'admin',
        'admin': True,
    })


def can_delete(item, guest):
    """Check if a guest may delete a gallery item.

    Admins may delete anything. Otherwise the item must have been uploaded
    from the same browser; items stored without a browser id (script imports,
    uploads made before starting a session) are admin-only.
    """
    if not guest:
        return False
    if guest.get('admin'):
        return True
    if not item.get('browserId'):
        return False
    return item['browserId'] == guest['browserId']
