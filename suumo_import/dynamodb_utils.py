#!/usr/bin/env python3
"""
DynamoDB/S3 persistence for imported buildings, rooms and photos.

Single table, partition key building_id, sort key sort_key:
    BLDG#[<tenant>#]<external_key>  META                         building
    ...                             ROOM#<room code or hex>      room
    ...                             PHOTO#BUILDING#<photo_id>    building photo
    ...                             PHOTO#ROOM#<room>#<photo_id> room photo

photo_id is derived from the source URL, so a conditional put guarantees
one photo per (owner, source_url). Photo blobs go to S3.
"""
import hashlib
import json
import logging
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from .models import SaveResult
from .parsing_utils import external_key as compute_external_key
from .parsing_utils import name_match_key

logger = logging.getLogger(__name__)

META = 'META'
ROOM_PREFIX = 'ROOM#'
BUILDING_PHOTO_PREFIX = 'PHOTO#BUILDING#'
ROOM_PHOTO_PREFIX = 'PHOTO#ROOM#'

BUILDING_TYPES = ('apartment', 'mansion', 'house', 'office')
ROOM_TYPES = (
    'studio', 'one_bedroom', 'one_dk', 'one_ldk', 'two_bedroom', 'two_dk', 'two_ldk',
    'three_bedroom', 'three_dk', 'three_ldk', 'other',
)
ROOM_STATUSES = ('vacant', 'occupied', 'reserved', 'maintenance')
MONEY_FIELDS = ('rent', 'management_fee', 'deposit', 'key_money')


def convert_floats_to_decimal(value):
    """Recursively convert numbers to Decimal for DynamoDB"""
    if isinstance(value, bool):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, dict):
        return {k: convert_floats_to_decimal(v) for k, v in value.items()}
    if isinstance(value, list):
        return [convert_floats_to_decimal(v) for v in value]
    return value


def from_dynamodb(value):
    """Recursively convert DynamoDB Decimals back to int/float"""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: from_dynamodb(v) for k, v in value.items()}
    if isinstance(value, list):
        return [from_dynamodb(v) for v in value]
    return value


def prepare_for_dynamodb(record):
    """Drop None attributes and convert numbers to Decimal"""
    return convert_floats_to_decimal({k: v for k, v in record.items() if v is not None})


def photo_id_for(source_url) -> str:
    return hashlib.sha256(str(source_url).encode('utf-8')).hexdigest()[:16]


def validate_building(attrs) -> List[str]:
    errors = []
    if not attrs.get('name'):
        errors.append("name can't be blank")
    if not attrs.get('address'):
        errors.append("address can't be blank")
    if attrs.get('building_type') not in BUILDING_TYPES:
        errors.append(f"building_type is not included in the list: {attrs.get('building_type')}")
    floors = attrs.get('floors')
    if floors is not None and floors <= 0:
        errors.append('floors must be greater than 0')
    return errors


def validate_room(attrs) -> List[str]:
    errors = []
    if not attrs.get('room_number'):
        errors.append("room_number can't be blank")
    if attrs.get('floor') is None:
        errors.append("floor can't be blank")
    if attrs.get('room_type') not in ROOM_TYPES:
        errors.append(f"room_type is not included in the list: {attrs.get('room_type')}")
    if attrs.get('status') is not None and attrs['status'] not in ROOM_STATUSES:
        errors.append(f"status is not included in the list: {attrs['status']}")
    for field_name in MONEY_FIELDS:
        value = attrs.get(field_name)
        if value is not None and value < 0:
            errors.append(f'{field_name} must be greater than or equal to 0')
    area = attrs.get('area')
    if area is not None and area <= 0:
        errors.append('area must be greater than 0')
    return errors


def _is_conditional_failure(error: ClientError) -> bool:
    return error.response.get('Error', {}).get('Code') == 'ConditionalCheckFailedException'


class PropertyStore:
    """Find/create/update buildings and rooms, and attach photos."""

    def __init__(self, table, s3_client=None, bucket=None, tenant_id=None):
        self.table = table
        self.s3_client = s3_client
        self.bucket = bucket
        self.tenant_id = tenant_id

    @classmethod
    def from_config(cls, config, tenant_id=None) -> 'PropertyStore':
        dynamodb = boto3.resource('dynamodb', region_name=config.aws_region)
        table = dynamodb.Table(config.dynamodb_table)
        s3_client = boto3.client('s3', region_name=config.aws_region)
        logger.debug(f"DynamoDB table: {config.dynamodb_table}, photo bucket: {config.photo_bucket}")
        return cls(table, s3_client=s3_client, bucket=config.photo_bucket, tenant_id=tenant_id)

    def building_id_for(self, key) -> str:
        if self.tenant_id:
            return f"BLDG#{self.tenant_id}#{key}"
        return f"BLDG#{key}"

    # Buildings

    def find_building_by_external_key(self, key) -> Optional[Dict[str, Any]]:
        if not key:
            return None
        response = self.table.get_item(Key={'building_id': self.building_id_for(key), 'sort_key': META})
        item = response.get('Item')
        if item and self._in_tenant(item):
            return from_dynamodb(item)

        # Rows written before keyed ids, or under another id scheme
        items = self._scan(Attr('sort_key').eq(META) & Attr('external_key').eq(key))
        return items[0] if items else None

    def find_building_by_normalized_name(self, name, key=None) -> Optional[Dict[str, Any]]:
        """
        Fallback lookup by normalized name.

        Rows that already carry a different external_key belong to another
        building with the same name and are never matched.
        """
        target = name_match_key(name)
        if not target:
            return None
        for item in self._scan(Attr('sort_key').eq(META)):
            if name_match_key(item.get('name')) != target:
                continue
            if key and item.get('external_key') and item['external_key'] != key:
                continue
            return item
        return None

    def create_building(self, attrs) -> SaveResult:
        errors = validate_building(attrs)
        if errors:
            return SaveResult(errors=errors)

        key = attrs.get('external_key') or compute_external_key(attrs.get('name'), attrs.get('address'))
        now = datetime.now().isoformat()
        record = dict(attrs)
        record.update({
            'building_id': self.building_id_for(key),
            'sort_key': META,
            'external_key': key,
            'created_at': now,
            'updated_at': now,
        })
        if self.tenant_id:
            record['tenant_id'] = self.tenant_id

        try:
            self.table.put_item(
                Item=prepare_for_dynamodb(record),
                ConditionExpression='attribute_not_exists(building_id)',
            )
        except ClientError as e:
            if _is_conditional_failure(e):
                return SaveResult(errors=[f"building already exists: {record['building_id']}"])
            raise

        return SaveResult(record={k: v for k, v in record.items() if v is not None})

    def update_building(self, building, attrs) -> SaveResult:
        merged = {**building, **attrs}
        errors = validate_building(merged)
        if errors:
            return SaveResult(record=building, errors=errors)
        return SaveResult(record=self._update(building, attrs))

    # Rooms

    def find_room_by_code(self, building, code) -> Optional[Dict[str, Any]]:
        if not code:
            return None
        response = self.table.get_item(Key={'building_id': building['building_id'], 'sort_key': ROOM_PREFIX + code})
        if response.get('Item'):
            return from_dynamodb(response['Item'])
        items = self._query(building['building_id'], ROOM_PREFIX, Attr('suumo_room_code').eq(code))
        return items[0] if items else None

    def find_room_by_number(self, building, room_number) -> Optional[Dict[str, Any]]:
        if not room_number:
            return None
        items = self._query(building['building_id'], ROOM_PREFIX, Attr('room_number').eq(room_number))
        return items[0] if items else None

    def list_rooms(self, building) -> List[Dict[str, Any]]:
        return self._query(building['building_id'], ROOM_PREFIX)

    def create_room(self, building, attrs) -> SaveResult:
        errors = validate_room(attrs)
        if errors:
            return SaveResult(errors=errors)

        room_key = attrs.get('suumo_room_code') or uuid.uuid4().hex
        now = datetime.now().isoformat()
        record = dict(attrs)
        record.update({
            'building_id': building['building_id'],
            'sort_key': ROOM_PREFIX + room_key,
            'created_at': now,
            'updated_at': now,
        })

        try:
            self.table.put_item(
                Item=prepare_for_dynamodb(record),
                ConditionExpression='attribute_not_exists(sort_key)',
            )
        except ClientError as e:
            if _is_conditional_failure(e):
                return SaveResult(errors=[f"room already exists: {record['sort_key']}"])
            raise

        return SaveResult(record={k: v for k, v in record.items() if v is not None})

    def update_room(self, room, attrs) -> SaveResult:
        merged = {**room, **attrs}
        errors = validate_room(merged)
        if errors:
            return SaveResult(record=room, errors=errors)
        return SaveResult(record=self._update(room, attrs))

    # Photos

    @staticmethod
    def photo_prefix(owner) -> str:
        if owner['sort_key'] == META:
            return BUILDING_PHOTO_PREFIX
        room_id = owner['sort_key'][len(ROOM_PREFIX):]
        return f"{ROOM_PHOTO_PREFIX}{room_id}#"

    def photo_exists(self, owner, source_url) -> bool:
        response = self.table.get_item(Key={
            'building_id': owner['building_id'],
            'sort_key': self.photo_prefix(owner) + photo_id_for(source_url),
        })
        return 'Item' in response

    def list_photos(self, owner) -> List[Dict[str, Any]]:
        return self._query(owner['building_id'], self.photo_prefix(owner))

    def attach_photo(self, owner, fileobj, filename, content_type, photo_type,
                     display_order=0, source_url=None) -> SaveResult:
        """
        Store a photo record under owner and upload its blob to S3.

        The record is written first with a conditional put, so a second call
        for the same (owner, source_url) returns an error result and uploads
        nothing. If the upload fails the record is removed and the error raised.
        """
        photo_id = photo_id_for(source_url)
        owner_id = owner['sort_key']
        s3_key = f"photos/{owner['building_id']}/{owner_id}/{photo_id}/{filename}"
        record = {
            'building_id': owner['building_id'],
            'sort_key': self.photo_prefix(owner) + photo_id,
            'photo_id': photo_id,
            'owner_type': 'building' if owner_id == META else 'room',
            'owner_id': owner_id,
            'photo_type': photo_type,
            'display_order': display_order,
            'source_url': source_url,
            'filename': filename,
            'content_type': content_type,
            's3_bucket': self.bucket,
            's3_key': s3_key,
            'created_at': datetime.now().isoformat(),
        }

        try:
            self.table.put_item(
                Item=prepare_for_dynamodb(record),
                ConditionExpression='attribute_not_exists(sort_key)',
            )
        except ClientError as e:
            if _is_conditional_failure(e):
                return SaveResult(errors=[f"photo already exists for {source_url}"])
            raise

        try:
            self.s3_client.put_object(
                Bucket=self.bucket,
                Key=s3_key,
                Body=fileobj,
                ContentType=content_type,
            )
        except Exception:
            self.table.delete_item(Key={'building_id': record['building_id'], 'sort_key': record['sort_key']})
            raise

        logger.debug(f"Uploaded photo to s3://{self.bucket}/{s3_key}")
        return SaveResult(record=record)

    # Internals

    def _in_tenant(self, item) -> bool:
        return not self.tenant_id or item.get('tenant_id') == self.tenant_id

    def _update(self, record, attrs) -> Dict[str, Any]:
        """SET non-None attrs, REMOVE None ones; returns the merged record"""
        attrs = dict(attrs)
        attrs['updated_at'] = datetime.now().isoformat()

        names = {}
        values = {}
        set_parts = []
        remove_parts = []
        for index, (field_name, value) in enumerate(attrs.items()):
            names[f'#f{index}'] = field_name
            if value is None:
                remove_parts.append(f'#f{index}')
            else:
                values[f':v{index}'] = convert_floats_to_decimal(value)
                set_parts.append(f'#f{index} = :v{index}')

        expression = 'SET ' + ', '.join(set_parts)
        if remove_parts:
            expression += ' REMOVE ' + ', '.join(remove_parts)

        self.table.update_item(
            Key={'building_id': record['building_id'], 'sort_key': record['sort_key']},
            UpdateExpression=expression,
            ExpressionAttributeNames=names,
            ExpressionAttributeValues=values,
        )

        merged = {**record, **attrs}
        return {k: v for k, v in merged.items() if v is not None}

    def _scan(self, filter_expression) -> List[Dict[str, Any]]:
        if self.tenant_id:
            filter_expression = filter_expression & Attr('tenant_id').eq(self.tenant_id)

        scan_kwargs = {'FilterExpression': filter_expression}
        items = []
        while True:
            response = self.table.scan(**scan_kwargs)
            items.extend(from_dynamodb(item) for item in response.get('Items', []))
            if 'LastEvaluatedKey' not in response:
                break
            scan_kwargs['ExclusiveStartKey'] = response['LastEvaluatedKey']
        return items

    def _query(self, building_id, prefix, filter_expression=None) -> List[Dict[str, Any]]:
        query_kwargs = {
            'KeyConditionExpression': Key('building_id').eq(building_id) & Key('sort_key').begins_with(prefix),
        }
        if filter_expression is not None:
            query_kwargs['FilterExpression'] = filter_expression

        items = []
        while True:
            response = self.table.query(**query_kwargs)
            items.extend(from_dynamodb(item) for item in response.get('Items', []))
            if 'LastEvaluatedKey' not in response:
                break
            query_kwargs['ExclusiveStartKey'] = response['LastEvaluatedKey']
        return items


class GeocodeQueue:
    """Fire-and-forget geocode requests via async Lambda invocation."""

    def __init__(self, lambda_client=None, function_name=''):
        self.lambda_client = lambda_client
        self.function_name = function_name

    @classmethod
    def from_config(cls, config) -> 'GeocodeQueue':
        if not config.geocode_function:
            return cls()
        return cls(boto3.client('lambda', region_name=config.aws_region), config.geocode_function)

    def enqueue(self, building_id) -> bool:
        if not self.function_name or self.lambda_client is None:
            logger.debug(f"Geocoding disabled, not queueing {building_id}")
            return False
        try:
            self.lambda_client.invoke(
                FunctionName=self.function_name,
                InvocationType='Event',
                Payload=json.dumps({'operation': 'geocode_building', 'building_id': building_id}),
            )
            return True
        except Exception as e:
            logger.warning(f"Failed to queue geocoding for {building_id}: {e}")
            return False
