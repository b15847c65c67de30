"""
Comments Module

Guest comments on photos and audio messages, stored in the GalleryComments
table under the commented item:
    pk = 'ITEM#<itemId>', sk = 'COMMENT#<createdAt>#<commentId>'
A comment references its item through exactly one of photoId / audioId.
"""

import os
import uuid
from collections import Counter
from datetime import datetime

import boto3
from boto3.dynamodb.conditions import Key, Attr

dynamodb = boto3.resource('dynamodb')
comments_table = dynamodb.Table(os.environ.get('COMMENTS_TABLE', 'GalleryComments'))

# Comment item type -> foreign key attribute
ITEM_TYPE_FIELDS = {
    'photo': 'photoId',
    'audio': 'audioId',
}


def foreign_key_for(item_type):
    """Get the foreign key attribute for an item type ('photo' or 'audio')"""
    try:
        return ITEM_TYPE_FIELDS[item_type]
    except KeyError:
        raise ValueError(f'Invalid itemType: {item_type} (expected photo or audio)')


def validate_comment(content, username, item_id, item_type):
    """Validate comment input before anything is written.

    Returns:
        tuple: (content, username, item_id) as stripped strings
    """
    if not content or not username or not item_id or not item_type:
        raise ValueError('Missing required fields: content, username, itemId, itemType')

    content = str(content).strip()
    username = str(username).strip()
    if not content:
        raise ValueError('Comment cannot be empty')
    if not username:
        raise ValueError('Name cannot be empty')

    foreign_key_for(item_type)
    return content, username, str(item_id)


def format_comment(row):
    return {
        'id': row['id'],
        'content': row.get('content'),
        'username': row.get('username'),
        'photoId': row.get('photoId'),
        'audioId': row.get('audioId'),
        'createdAt': row.get('createdAt'),
        'updatedAt': row.get('updatedAt'),
    }


def add_comment(content, username, item_id, item_type):
    """Insert a comment with server-stamped timestamps"""
    content, username, item_id = validate_comment(content, username, item_id, item_type)

    comment_id = str(uuid.uuid4())
    now = datetime.utcnow().isoformat() + 'Z'

    row = {
        'pk': f'ITEM#{item_id}',
        'sk': f'COMMENT#{now}#{comment_id}',
        'id': comment_id,
        'content': content,
        'username': username,
        foreign_key_for(item_type): item_id,
        'createdAt': now,
        'updatedAt': now,
    }
    comments_table.put_item(Item=row)
    return format_comment(row)


def get_comments(item_id, item_type):
    """Get an item's comments, newest first.

    Only rows whose foreign key matches item_type are returned, so a photo
    query never yields audio comments and vice versa.
    """
    if not item_id or not item_type:
        raise ValueError('Missing required fields: itemId, itemType')
    field = foreign_key_for(item_type)

    query_args = {
        'KeyConditionExpression': Key('pk').eq(f'ITEM#{item_id}') & Key('sk').begins_with('COMMENT#'),
        'FilterExpression': Attr(field).eq(item_id),
        'ScanIndexForward': False,
    }
    response = comments_table.query(**query_args)
    rows = response.get('Items', [])

    # Handle pagination
    while 'LastEvaluatedKey' in response:
        response = comments_table.query(ExclusiveStartKey=response['LastEvaluatedKey'], **query_args)
        rows.extend(response.get('Items', []))

    return [format_comment(row) for row in rows if row.get(field) == item_id]


def get_comment_counts():
    """Count comments per item across the whole table.

    Returns:
        dict: {itemId: count}
    """
    scan_args = {
        'ProjectionExpression': 'pk',
    }
    response = comments_table.scan(**scan_args)
    rows = response.get('Items', [])

    while 'LastEvaluatedKey' in response:
        response = comments_table.scan(ExclusiveStartKey=response['LastEvaluatedKey'], **scan_args)
        rows.extend(response.get('Items', []))

    return dict(Counter(row['pk'].replace('ITEM#', '', 1) for row in rows))


def delete_comments_for_item(item_id):
    """Delete every comment of an item.

    Returns:
        int: Number of comments deleted
    """
    query_args = {
        'KeyConditionExpression': Key('pk').eq(f'ITEM#{item_id}'),
        'ProjectionExpression': 'pk, sk',
    }
    response = comments_table.query(**query_args)
    keys = response.get('Items', [])

    while 'LastEvaluatedKey' in response:
        response = comments_table.query(ExclusiveStartKey=response['LastEvaluatedKey'], **query_args)
        keys.extend(response.get('Items', []))

    with comments_table.batch_writer() as batch:
        for key in keys:
            batch.delete_item(Key={'pk': key['pk'], 'sk': key['sk']})

    return len(keys)
