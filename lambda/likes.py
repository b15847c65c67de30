"""
Likes Module

Each like is stored twice in the GalleryLikes table:
    pk = 'ITEM#<itemId>',       sk = 'BROWSER#<browserId>'   (like row)
    pk = 'BROWSER#<browserId>', sk = 'ITEM#<itemId>'         (browser row)
The like row's key makes the pair unique. Toggling writes it conditionally
and only adjusts the item's like counter when the write actually took
effect, so concurrent double-clicks cannot add two likes or remove one
twice. The browser row lets a browser's likes be read with one query.
"""

import os
import uuid
from datetime import datetime

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError

import gallery

dynamodb = boto3.resource('dynamodb')
likes_table = dynamodb.Table(os.environ.get('LIKES_TABLE', 'GalleryLikes'))


def like_key(item_id, browser_id):
    return {'pk': f'ITEM#{item_id}', 'sk': f'BROWSER#{browser_id}'}


def browser_key(item_id, browser_id):
    return {'pk': f'BROWSER#{browser_id}', 'sk': f'ITEM#{item_id}'}


def add_like(item_id, browser_id):
    """Insert the like row if absent.

    Returns:
        bool: True if a new row was written, False if the browser already liked the item
    """
    row = {
        'id': str(uuid.uuid4()),
        'itemId': item_id,
        'browserId': browser_id,
        'createdAt': datetime.utcnow().isoformat() + 'Z'
    }
    try:
        likes_table.put_item(
            Item={**like_key(item_id, browser_id), **row},
            ConditionExpression='attribute_not_exists(pk)'
        )
    except ClientError as e:
        if e.response.get('Error', {}).get('Code') == 'ConditionalCheckFailedException':
            return False
        raise

    likes_table.put_item(Item={**browser_key(item_id, browser_id), **row})
    return True


def remove_like(item_id, browser_id):
    """Delete the like row and its browser row.

    Returns:
        bool: True if this call removed an existing like row
    """
    response = likes_table.delete_item(
        Key=like_key(item_id, browser_id),
        ReturnValues='ALL_OLD'
    )
    likes_table.delete_item(Key=browser_key(item_id, browser_id))
    return 'Attributes' in response


def toggle_like(item_id, browser_id):
    """Like an item, or remove the like if this browser already liked it.

    Returns:
        dict: {'itemId': str, 'liked': bool, 'likes': int}

    Raises:
        LookupError: if the item doesn't exist
    """
    if not item_id:
        raise ValueError('Missing itemId')

    item = gallery.get_gallery_item(item_id)
    if item is None:
        raise LookupError(f'Gallery item not found: {item_id}')

    if add_like(item_id, browser_id):
        likes = gallery.increment_likes(item_id)
        print(f"Like added: {item_id} by {browser_id} ({likes})")
        return {'itemId': item_id, 'liked': True, 'likes': likes}

    if remove_like(item_id, browser_id):
        likes = gallery.decrement_likes(item_id)
    else:
        # Another request removed the row between our two calls
        likes = int(item.get('likes', 0) or 0)
    print(f"Like removed: {item_id} by {browser_id} ({likes})")
    return {'itemId': item_id, 'liked': False, 'likes': likes}


def get_liked_item_ids(browser_id):
    """Get the ids of every item a browser has liked"""
    query_args = {
        'KeyConditionExpression': Key('pk').eq(f'BROWSER#{browser_id}') & Key('sk').begins_with('ITEM#'),
        'ProjectionExpression': 'itemId',
    }
    response = likes_table.query(**query_args)
    rows = response.get('Items', [])

    # Handle pagination
    while 'LastEvaluatedKey' in response:
        response = likes_table.query(ExclusiveStartKey=response['LastEvaluatedKey'], **query_args)
        rows.extend(response.get('Items', []))

    return [row['itemId'] for row in rows]


def delete_likes_for_item(item_id):
    """Delete every like of an item, with the matching browser rows.

    Returns:
        int: Number of likes deleted
    """
    query_args = {
        'KeyConditionExpression': Key('pk').eq(f'ITEM#{item_id}'),
        'ProjectionExpression': 'pk, sk',
    }
    response = likes_table.query(**query_args)
    keys = response.get('Items', [])

    while 'LastEvaluatedKey' in response:
        response = likes_table.query(ExclusiveStartKey=response['LastEvaluatedKey'], **query_args)
        keys.extend(response.get('Items', []))

    with likes_table.batch_writer() as batch:
        for key in keys:
            batch.delete_item(Key={'pk': key['pk'], 'sk': key['sk']})
            browser_id = key['sk'].replace('BROWSER#', '', 1)
            batch.delete_item(Key=browser_key(item_id, browser_id))

    return len(keys)
