"""DynamoDB-backed account and post stores."""

from datetime import datetime

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .errors import DuplicatePostError, PersistError
from .logging_config import create_execution_logger
from .models import AccountSettings, Post

CONDITIONAL_CHECK_FAILED = "ConditionalCheckFailedException"


def _error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "Unknown")


class PostStore:
    """Imported posts, keyed by ``owner_account_id`` + ``external_id``.

    The key makes ``(account, external id)`` unique; inserts are conditional
    so a concurrent run importing the same item is rejected by the table
    rather than creating a second row.
    """

    def __init__(
        self,
        table_name: str,
        aws_region: str = "us-east-1",
        execution_id: str | None = None,
    ):
        """Initialize the PostStore with DynamoDB configuration.

        Args:
            table_name: Name of the DynamoDB posts table
            aws_region: AWS region for DynamoDB client
            execution_id: Execution ID for logging context
        """
        self.table_name = table_name
        self.aws_region = aws_region
        self.logger = create_execution_logger("post_store", execution_id)
        self.dynamodb = boto3.resource("dynamodb", region_name=aws_region)
        self.table = self.dynamodb.Table(table_name)

        self.logger.info(
            "PostStore initialized", table_name=table_name, aws_region=aws_region
        )

    def existing_external_ids(self, account_id: str) -> set[str]:
        """Load every external id the account already has a post for."""
        query_kwargs = {
            "KeyConditionExpression": "owner_account_id = :owner",
            "ExpressionAttributeValues": {":owner": account_id},
            "ProjectionExpression": "external_id",
        }
        external_ids: set[str] = set()
        while True:
            response = self.table.query(**query_kwargs)
            external_ids.update(item["external_id"] for item in response.get("Items", []))
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                break
            query_kwargs["ExclusiveStartKey"] = last_key

        self.logger.debug(
            "Loaded existing external ids",
            account_id=account_id,
            existing_count=len(external_ids),
        )
        return external_ids

    def insert(self, post: Post) -> None:
        """Store a new post.

        Raises:
            DuplicatePostError: If the account already owns this external id
            PersistError: If DynamoDB rejects the write or cannot be reached
        """
        try:
            self.table.put_item(
                Item=post.to_item(),
                ConditionExpression="attribute_not_exists(external_id)",
            )
        except ClientError as e:
            code = _error_code(e)
            if code == CONDITIONAL_CHECK_FAILED:
                raise DuplicatePostError(
                    f"Post {post.external_id} already exists for {post.owner_account_id}"
                ) from e
            self.logger.error(
                f"Error storing post {post.external_id}: {code}",
                account_id=post.owner_account_id,
                external_id=post.external_id,
                error=str(e),
            )
            raise PersistError(f"Failed to store post {post.external_id}: {code}") from e
        except BotoCoreError as e:
            self.logger.error(
                f"Error storing post {post.external_id}: {e}",
                account_id=post.owner_account_id,
                external_id=post.external_id,
                error=str(e),
            )
            raise PersistError(f"Failed to store post {post.external_id}: {e}") from e

    def get(self, account_id: str, external_id: str) -> Post | None:
        response = self.table.get_item(
            Key={"owner_account_id": account_id, "external_id": external_id}
        )
        item = response.get("Item")
        return Post.from_item(item) if item else None

    def list_posts(self, account_id: str) -> list[Post]:
        query_kwargs = {
            "KeyConditionExpression": "owner_account_id = :owner",
            "ExpressionAttributeValues": {":owner": account_id},
        }
        posts: list[Post] = []
        while True:
            response = self.table.query(**query_kwargs)
            posts.extend(Post.from_item(item) for item in response.get("Items", []))
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                break
            query_kwargs["ExclusiveStartKey"] = last_key
        return posts


class AccountStore:
    """Per-account feed settings, keyed by ``account_id``."""

    def __init__(
        self,
        table_name: str,
        aws_region: str = "us-east-1",
        execution_id: str | None = None,
    ):
        self.table_name = table_name
        self.aws_region = aws_region
        self.logger = create_execution_logger("account_store", execution_id)
        self.dynamodb = boto3.resource("dynamodb", region_name=aws_region)
        self.table = self.dynamodb.Table(table_name)

    @staticmethod
    def _to_settings(item: dict) -> AccountSettings:
        last_sync = item.get("last_feed_sync_at")
        return AccountSettings(
            account_id=item["account_id"],
            feed_url=item.get("feed_url") or None,
            auto_publish_from_feed=bool(item.get("auto_publish_from_feed", False)),
            last_feed_sync_at=datetime.fromisoformat(last_sync) if last_sync else None,
        )

    def get_account(self, account_id: str) -> AccountSettings:
        """Fetch an account's settings; unknown accounts get the defaults."""
        response = self.table.get_item(Key={"account_id": account_id})
        item = response.get("Item")
        if not item:
            self.logger.info(
                "No settings stored for account, using defaults",
                account_id=account_id,
            )
            return AccountSettings(account_id=account_id)
        return self._to_settings(item)

    def list_subscribed_accounts(self) -> list[AccountSettings]:
        """Every account with a configured feed URL."""
        scan_kwargs = {
            "FilterExpression": "attribute_exists(feed_url) AND feed_url <> :empty",
            "ExpressionAttributeValues": {":empty": ""},
        }
        accounts: list[AccountSettings] = []
        while True:
            response = self.table.scan(**scan_kwargs)
            accounts.extend(self._to_settings(item) for item in response.get("Items", []))
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                break
            scan_kwargs["ExclusiveStartKey"] = last_key

        self.logger.info("Loaded subscribed accounts", account_count=len(accounts))
        return accounts

    def mark_synced(self, account_id: str, synced_at: datetime) -> None:
        self.table.update_item(
            Key={"account_id": account_id},
            UpdateExpression="SET last_feed_sync_at = :synced_at",
            ExpressionAttributeValues={":synced_at": synced_at.isoformat()},
        )
