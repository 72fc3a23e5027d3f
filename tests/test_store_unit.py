"""Unit tests for the DynamoDB stores, backed by moto."""

from datetime import UTC, datetime
from unittest.mock import Mock, patch

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError, ReadTimeoutError

from feed_ingest.errors import DuplicatePostError, PersistError
from feed_ingest.models import Post, PostStatus, SourcePlatform
from feed_ingest.store import PostStore


def make_post(account_id="U1", external_id="A", **overrides) -> Post:
    fields = {
        "owner_account_id": account_id,
        "external_id": external_id,
        "title": "Hello",
        "slug": "hello-1",
        "content": "<p>Hi</p>",
        "excerpt": "Hi",
        "status": PostStatus.DRAFT,
        "source_feed_url": "https://blog.example.com/feed/",
        "source_platform": SourcePlatform.RSS,
    }
    fields.update(overrides)
    return Post(**fields)


class TestPostStore:
    def test_insert_and_read_back(self, post_store):
        published = datetime(2024, 1, 15, 10, 0, tzinfo=UTC)
        post_store.insert(
            make_post(
                status=PostStatus.PUBLISHED,
                published_at=published,
                featured_image_url="https://cdn.example.com/a.png",
            )
        )

        stored = post_store.get("U1", "A")

        assert stored is not None
        assert stored.title == "Hello"
        assert stored.status is PostStatus.PUBLISHED
        assert stored.published_at == published
        assert stored.featured_image_url == "https://cdn.example.com/a.png"

    def test_draft_is_stored_without_published_at(self, post_store, dynamodb_tables):
        posts_table, _ = dynamodb_tables
        post_store.insert(make_post())

        item = posts_table.get_item(
            Key={"owner_account_id": "U1", "external_id": "A"}
        )["Item"]

        assert "published_at" not in item
        assert item["status"] == "draft"

    def test_second_insert_for_same_key_is_rejected(self, post_store):
        post_store.insert(make_post(title="First"))

        with pytest.raises(DuplicatePostError):
            post_store.insert(make_post(title="Second"))

        assert post_store.get("U1", "A").title == "First"

    def test_same_external_id_for_other_account_is_allowed(self, post_store):
        post_store.insert(make_post(account_id="U1"))
        post_store.insert(make_post(account_id="U2"))

        assert post_store.existing_external_ids("U1") == {"A"}
        assert post_store.existing_external_ids("U2") == {"A"}

    def test_existing_external_ids_is_scoped_to_account(self, post_store):
        for external_id in ("A", "B", "C"):
            post_store.insert(make_post(external_id=external_id))
        post_store.insert(make_post(account_id="U2", external_id="Z"))

        assert post_store.existing_external_ids("U1") == {"A", "B", "C"}
        assert post_store.existing_external_ids("nobody") == set()
        assert len(post_store.list_posts("U1")) == 3

    def test_other_client_errors_become_persist_error(self):
        with patch("boto3.resource") as mock_resource:
            mock_table = Mock()
            mock_resource.return_value.Table.return_value = mock_table
            mock_table.put_item.side_effect = ClientError(
                {"Error": {"Code": "ProvisionedThroughputExceededException"}},
                "PutItem",
            )
            store = PostStore("test-table", "us-east-1")

            with pytest.raises(PersistError) as excinfo:
                store.insert(make_post())

        assert not isinstance(excinfo.value, DuplicatePostError)

    @pytest.mark.parametrize(
        "error",
        [
            EndpointConnectionError(endpoint_url="https://dynamodb.us-east-1.amazonaws.com"),
            ReadTimeoutError(endpoint_url="https://dynamodb.us-east-1.amazonaws.com"),
        ],
    )
    def test_transport_errors_become_persist_error(self, error):
        with patch("boto3.resource") as mock_resource:
            mock_table = Mock()
            mock_resource.return_value.Table.return_value = mock_table
            mock_table.put_item.side_effect = error
            store = PostStore("test-table", "us-east-1")

            with pytest.raises(PersistError) as excinfo:
                store.insert(make_post())

        assert not isinstance(excinfo.value, DuplicatePostError)
        assert excinfo.value.__cause__ is error

    def test_existing_external_ids_follows_pagination(self):
        with patch("boto3.resource") as mock_resource:
            mock_table = Mock()
            mock_resource.return_value.Table.return_value = mock_table
            mock_table.query.side_effect = [
                {"Items": [{"external_id": "A"}], "LastEvaluatedKey": {"k": 1}},
                {"Items": [{"external_id": "B"}]},
            ]
            store = PostStore("test-table", "us-east-1")

            assert store.existing_external_ids("U1") == {"A", "B"}

        second_call = mock_table.query.call_args_list[1][1]
        assert second_call["ExclusiveStartKey"] == {"k": 1}


class TestAccountStore:
    def test_unknown_account_gets_defaults(self, account_store):
        account = account_store.get_account("ghost")

        assert account.account_id == "ghost"
        assert account.feed_url is None
        assert account.auto_publish_from_feed is False

    def test_get_account_reads_preference(self, account_store, accounts_table):
        accounts_table.put_item(
            Item={
                "account_id": "U1",
                "feed_url": "https://blog.example.com/feed/",
                "auto_publish_from_feed": True,
            }
        )

        account = account_store.get_account("U1")

        assert account.feed_url == "https://blog.example.com/feed/"
        assert account.auto_publish_from_feed is True

    def test_list_subscribed_accounts_skips_accounts_without_feed(
        self, account_store, accounts_table
    ):
        accounts_table.put_item(Item={"account_id": "U1", "feed_url": "https://a.example.com/feed"})
        accounts_table.put_item(Item={"account_id": "U2", "feed_url": ""})
        accounts_table.put_item(Item={"account_id": "U3"})

        accounts = account_store.list_subscribed_accounts()

        assert [account.account_id for account in accounts] == ["U1"]

    def test_mark_synced_records_timestamp(self, account_store, accounts_table):
        accounts_table.put_item(Item={"account_id": "U1", "feed_url": "https://a.example.com/feed"})
        synced_at = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)

        account_store.mark_synced("U1", synced_at)

        assert account_store.get_account("U1").last_feed_sync_at == synced_at
