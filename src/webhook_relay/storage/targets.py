"""
Module: targets.py
Description: DynamoDB-backed registry of tenant application targets.

Maps (tenant_id, application name) to a delivery URL. Ingestion consults
it to snapshot the target URL onto each new event. Registration uses
upsert semantics: the same name registered twice keeps one record and
the latest URL.

Dependencies: boto3, botocore, typing
"""

from typing import List, Optional

import boto3
from botocore.exceptions import ClientError

from webhook_relay.models.event import utc_now
from webhook_relay.models.target import Target
from webhook_relay.storage.dynamodb import format_timestamp, parse_timestamp
from webhook_relay.utils.logger import get_logger

logger = get_logger(__name__)


def _item_to_target(item: dict) -> Target:
    return Target(
        tenant_id=item['tenant_id'],
        name=item['name'],
        target_url=item.get('target_url') or None,
        created_at=parse_timestamp(item['created_at']),
        updated_at=parse_timestamp(item['updated_at']),
    )


class TargetRegistry:
    """
    DynamoDB client for application target mappings.

    Table key: tenant_id (HASH), name (RANGE).
    """

    def __init__(
        self,
        table_name: str,
        region_name: Optional[str] = None,
        endpoint_url: Optional[str] = None
    ):
        """
        Initialize target registry client.

        Args:
            table_name: Name of the DynamoDB targets table
            region_name: AWS region (defaults to the boto3 session region)
            endpoint_url: Optional AWS endpoint override

        Raises:
            ValueError: If table_name is empty or invalid
        """
        if not table_name or not isinstance(table_name, str):
            raise ValueError("table_name must be a non-empty string")

        self.table_name = table_name
        self.dynamodb = boto3.resource(
            'dynamodb',
            region_name=region_name,
            endpoint_url=endpoint_url
        )
        self.table = self.dynamodb.Table(table_name)

    async def get_target(self, tenant_id: str, name: str) -> Optional[Target]:
        """
        Look up the target registered by a tenant for an application.

        Returns:
            Target if registered, None otherwise
        """
        try:
            response = self.table.get_item(
                Key={'tenant_id': tenant_id, 'name': name}
            )
        except ClientError as e:
            logger.error(
                "Failed to read target from DynamoDB",
                tenant_id=tenant_id,
                application_name=name,
                table_name=self.table_name,
                error_code=e.response['Error']['Code'],
                error_message=e.response['Error']['Message']
            )
            raise

        item = response.get('Item')
        if item is None:
            return None
        return _item_to_target(item)

    async def put_target(
        self,
        tenant_id: str,
        name: str,
        target_url: Optional[str]
    ) -> Target:
        """
        Create or update the target for (tenant_id, name).

        Keeps the original created_at when the mapping already exists.

        Returns:
            The stored Target
        """
        target = Target(tenant_id=tenant_id, name=name, target_url=target_url)
        now = format_timestamp(utc_now())

        try:
            response = self.table.update_item(
                Key={'tenant_id': target.tenant_id, 'name': target.name},
                UpdateExpression=(
                    'SET target_url = :url, updated_at = :now, '
                    'created_at = if_not_exists(created_at, :now)'
                ),
                ExpressionAttributeValues={
                    ':url': target.target_url or '',
                    ':now': now
                },
                ReturnValues='ALL_NEW'
            )
        except ClientError as e:
            logger.error(
                "Failed to store target in DynamoDB",
                tenant_id=tenant_id,
                application_name=name,
                table_name=self.table_name,
                error_code=e.response['Error']['Code'],
                error_message=e.response['Error']['Message']
            )
            raise

        logger.info(
            "Target registered",
            tenant_id=tenant_id,
            application_name=name,
            has_target_url=bool(target.target_url)
        )

        return _item_to_target(response['Attributes'])

    async def list_targets(self, tenant_id: str) -> List[Target]:
        """List all targets registered by a tenant, ordered by name."""
        kwargs = {
            'KeyConditionExpression': '#tenant_id = :tenant_id',
            'ExpressionAttributeNames': {'#tenant_id': 'tenant_id'},
            'ExpressionAttributeValues': {':tenant_id': tenant_id},
        }

        targets: List[Target] = []
        try:
            while True:
                response = self.table.query(**kwargs)
                targets.extend(_item_to_target(item) for item in response.get('Items', []))

                last_key = response.get('LastEvaluatedKey')
                if not last_key:
                    break
                kwargs['ExclusiveStartKey'] = last_key

        except ClientError as e:
            logger.error(
                "Failed to list targets from DynamoDB",
                tenant_id=tenant_id,
                table_name=self.table_name,
                error_code=e.response['Error']['Code'],
                error_message=e.response['Error']['Message']
            )
            raise

        return targets
