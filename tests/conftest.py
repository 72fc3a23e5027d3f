"""Shared fixtures: moto-backed DynamoDB tables and sample feed documents."""

from unittest.mock import Mock

import boto3
import pytest
from moto import mock_aws

from feed_ingest.fetcher import FeedFetcher
from feed_ingest.parser import FeedParser
from feed_ingest.pipeline import FeedIngestionPipeline
from feed_ingest.store import AccountStore, PostStore

REGION = "us-east-1"
POSTS_TABLE = "test-posts"
ACCOUNTS_TABLE = "test-accounts"


def rss_item(
    title: str = "",
    guid: str = "",
    link: str = "",
    pub_date: str = "",
    description: str = "",
    content_encoded: str = "",
    extra: str = "",
) -> str:
    parts = ["<item>"]
    if title:
        parts.append(f"<title>{title}</title>")
    if guid:
        parts.append(f"<guid>{guid}</guid>")
    if link:
        parts.append(f"<link>{link}</link>")
    if pub_date:
        parts.append(f"<pubDate>{pub_date}</pubDate>")
    if description:
        parts.append(f"<description>{description}</description>")
    if content_encoded:
        parts.append(f"<content:encoded><![CDATA[{content_encoded}]]></content:encoded>")
    if extra:
        parts.append(extra)
    parts.append("</item>")
    return "".join(parts)


def rss_document(*items: str) -> str:
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<rss version="2.0" '
        'xmlns:content="http://purl.org/rss/1.0/modules/content/" '
        'xmlns:media="http://search.yahoo.com/mrss/">'
        "<channel><title>Example Blog</title><link>https://blog.example.com/</link>"
        "<description>Posts</description>"
        + "".join(items)
        + "</channel></rss>"
    )


@pytest.fixture
def make_rss_item():
    return rss_item


@pytest.fixture
def make_rss_document():
    return rss_document


@pytest.fixture
def atom_document() -> str:
    return (
        '<?xml version="1.0" encoding="utf-8"?>'
        '<feed xmlns="http://www.w3.org/2005/Atom">'
        "<title>Example Atom</title><id>urn:example:feed</id>"
        "<updated>2024-02-01T08:00:00Z</updated>"
        "<entry>"
        "<title>Atom Entry</title>"
        '<link rel="alternate" href="https://atom.example.com/posts/1"/>'
        "<id>tag:atom.example.com,2024:1</id>"
        "<published>2024-02-01T08:00:00Z</published>"
        "<summary>Short summary</summary>"
        '<content type="html">&lt;p&gt;Full &lt;b&gt;body&lt;/b&gt;&lt;/p&gt;</content>'
        "</entry>"
        "</feed>"
    )


@pytest.fixture
def aws_credentials(monkeypatch):
    """Fake credentials so boto3 never reaches a real account."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", REGION)


@pytest.fixture
def dynamodb_tables(aws_credentials):
    """Create the posts and accounts tables inside a moto mock."""
    with mock_aws():
        dynamodb = boto3.resource("dynamodb", region_name=REGION)
        posts = dynamodb.create_table(
            TableName=POSTS_TABLE,
            KeySchema=[
                {"AttributeName": "owner_account_id", "KeyType": "HASH"},
                {"AttributeName": "external_id", "KeyType": "RANGE"},
            ],
            AttributeDefinitions=[
                {"AttributeName": "owner_account_id", "AttributeType": "S"},
                {"AttributeName": "external_id", "AttributeType": "S"},
            ],
            BillingMode="PAY_PER_REQUEST",
        )
        accounts = dynamodb.create_table(
            TableName=ACCOUNTS_TABLE,
            KeySchema=[{"AttributeName": "account_id", "KeyType": "HASH"}],
            AttributeDefinitions=[{"AttributeName": "account_id", "AttributeType": "S"}],
            BillingMode="PAY_PER_REQUEST",
        )
        yield posts, accounts


@pytest.fixture
def post_store(dynamodb_tables):
    return PostStore(POSTS_TABLE, REGION)


@pytest.fixture
def account_store(dynamodb_tables):
    return AccountStore(ACCOUNTS_TABLE, REGION)


@pytest.fixture
def accounts_table(dynamodb_tables):
    return dynamodb_tables[1]


@pytest.fixture
def fake_fetcher():
    """A fetcher whose documents are keyed by URL."""
    fetcher = Mock(spec=FeedFetcher)
    fetcher.documents = {}

    def fetch(url):
        document = fetcher.documents[url]
        if isinstance(document, Exception):
            raise document
        return document

    fetcher.fetch.side_effect = fetch
    return fetcher


@pytest.fixture
def pipeline(fake_fetcher, post_store, account_store):
    return FeedIngestionPipeline(
        fetcher=fake_fetcher,
        parser=FeedParser(),
        post_store=post_store,
        account_store=account_store,
    )
