"""Lambda entry points for on-demand feed import and scheduled feed sync."""

import json
import os
from datetime import UTC, datetime
from typing import Any

import boto3

from .config import Config
from .errors import (
    FetchError,
    InvalidFeedUrlError,
    NoItemsFoundError,
    NotAFeedError,
)
from .fetcher import FeedFetcher
from .logging_config import create_execution_logger, setup_structured_logging
from .parser import FeedParser
from .pipeline import AllSubscribedScope, FeedIngestionPipeline, SingleAccountScope
from .store import AccountStore, PostStore

setup_structured_logging(os.getenv("LOG_LEVEL", "INFO"))


class BadRequest(Exception):
    """The request body or identity is unusable; carries the HTTP status."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


def _response(status_code: int, body: dict[str, Any]) -> dict[str, Any]:
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(body),
    }


def _new_execution_id(prefix: str) -> str:
    return f"{prefix}_{datetime.now(UTC).strftime('%Y%m%d_%H%M%S_%f')}"


def build_pipeline(config: Config, execution_id: str) -> FeedIngestionPipeline:
    storage = config.get_storage_config()
    return FeedIngestionPipeline(
        fetcher=FeedFetcher(config.get_fetch_config(), execution_id=execution_id),
        parser=FeedParser(execution_id=execution_id),
        post_store=PostStore(storage.posts_table, storage.region, execution_id),
        account_store=AccountStore(storage.accounts_table, storage.region, execution_id),
        execution_id=execution_id,
    )


def get_caller_id(event: dict[str, Any]) -> str:
    """Authenticated account id from an API Gateway authorizer context."""
    authorizer = (event.get("requestContext") or {}).get("authorizer") or {}
    claims = authorizer.get("claims") or {}
    caller_id = claims.get("sub") or authorizer.get("principalId")
    if not caller_id:
        raise BadRequest("Unauthorized", status_code=401)
    return str(caller_id)


def parse_import_request(
    event: dict[str, Any], default_limit: int, max_limit: int
) -> tuple[str, int]:
    """Extract ``feedUrl`` and ``itemLimit`` from the request body."""
    raw_body = event.get("body") or "{}"
    try:
        body = json.loads(raw_body) if isinstance(raw_body, str) else raw_body
    except json.JSONDecodeError:
        raise BadRequest("Request body must be valid JSON")
    if not isinstance(body, dict):
        raise BadRequest("Request body must be a JSON object")

    feed_url = body.get("feedUrl")
    if not isinstance(feed_url, str) or not feed_url.strip():
        raise BadRequest("feedUrl is required")

    limit = body.get("itemLimit", default_limit)
    if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
        raise BadRequest("itemLimit must be a positive integer")

    return feed_url.strip(), min(limit, max_limit)


def import_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """
    Import items from one feed URL into the caller's account.

    Args:
        event: API Gateway proxy event with ``{"feedUrl", "itemLimit"?}`` body
        context: Lambda context object

    Returns:
        API Gateway proxy response with import counts or an error
    """
    execution_id = _new_execution_id("import")
    main_logger = create_execution_logger("import", execution_id)
    main_logger.log_execution_start(
        lambda_request_id=getattr(context, "aws_request_id", "unknown")
    )

    try:
        config = Config()
        account_id = get_caller_id(event)
        feed_url, limit = parse_import_request(
            event, config.default_item_limit, config.max_item_limit
        )
    except BadRequest as e:
        main_logger.warning(f"Rejected import request: {e}", status_code=e.status_code)
        main_logger.log_execution_end(success=False, error=str(e))
        return _response(e.status_code, {"success": False, "error": str(e)})
    except ValueError as e:
        main_logger.exception(f"Invalid configuration: {e}")
        main_logger.log_execution_end(success=False, error=str(e))
        return _response(500, {"success": False, "error": "Failed to import feed"})

    try:
        pipeline = build_pipeline(config, execution_id)
        tally = pipeline.run(SingleAccountScope(account_id, feed_url, limit))
    except InvalidFeedUrlError as e:
        return _feed_error(main_logger, 400, e, feed_url)
    except (NotAFeedError, NoItemsFoundError) as e:
        return _feed_error(main_logger, 422, e, feed_url)
    except FetchError as e:
        return _feed_error(main_logger, 502, e, feed_url)
    except Exception as e:
        main_logger.exception(
            f"Critical error importing feed {feed_url}: {e}",
            feed_url=feed_url,
            account_id=account_id,
        )
        main_logger.log_execution_end(success=False, error=str(e))
        return _response(500, {"success": False, "error": "Failed to import feed"})

    metrics = {
        "feeds_processed": 1,
        "feeds_failed": 0,
        "items_found": tally.total,
        "posts_imported": tally.imported,
        "items_skipped": tally.skipped,
        "items_failed": tally.failed,
    }
    main_logger.log_metrics(metrics)
    send_cloudwatch_metrics(
        metrics, config.aws_region, execution_id, config.metrics_namespace
    )
    main_logger.log_execution_end(success=True, metrics=metrics)

    return _response(
        200,
        {
            "success": True,
            **tally.to_dict(),
            "message": (
                f"Imported {tally.imported} posts, skipped {tally.skipped} items"
            ),
        },
    )


def _feed_error(main_logger, status_code: int, error: Exception, feed_url: str):
    main_logger.warning(
        f"Feed import failed: {error}",
        feed_url=feed_url,
        error_type=type(error).__name__,
        status_code=status_code,
    )
    main_logger.log_execution_end(success=False, error=str(error))
    return _response(status_code, {"success": False, "error": str(error)})


def sync_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """
    Import new items of every configured feed for every subscribed account.

    Args:
        event: Scheduled event (ignored)
        context: Lambda context object

    Returns:
        Response dictionary with status and per-feed results
    """
    execution_id = _new_execution_id("sync")
    main_logger = create_execution_logger("sync", execution_id)
    main_logger.log_execution_start(
        lambda_request_id=getattr(context, "aws_request_id", "unknown"),
        lambda_function_name=getattr(context, "function_name", "unknown"),
    )

    try:
        config = Config()
        pipeline = build_pipeline(config, execution_id)
        result = pipeline.run(AllSubscribedScope())
    except Exception as e:
        error_msg = f"Critical error in feed sync: {e}"
        main_logger.exception(error_msg)
        main_logger.log_execution_end(success=False, error=error_msg)
        return _response(
            500,
            {
                "success": False,
                "execution_id": execution_id,
                "error": error_msg,
            },
        )

    tally = result.tally
    metrics = {
        "feeds_processed": len(result.feeds) - result.feeds_failed,
        "feeds_failed": result.feeds_failed,
        "items_found": sum(feed.items_found for feed in result.feeds),
        "posts_imported": result.synced,
        "items_skipped": tally.skipped,
        "items_failed": tally.failed,
    }
    main_logger.log_metrics(metrics)
    send_cloudwatch_metrics(
        metrics, config.aws_region, execution_id, config.metrics_namespace
    )
    main_logger.log_execution_end(success=True, metrics=metrics)

    return _response(
        200,
        {
            "success": True,
            "execution_id": execution_id,
            "message": (
                f"Synced {result.synced} new posts from {len(result.feeds)} feeds"
            ),
            "synced": result.synced,
            "feeds_failed": result.feeds_failed,
            "accounts_failed": result.accounts_failed,
            "feeds": [feed.to_dict() for feed in result.feeds],
        },
    )


def send_cloudwatch_metrics(
    metrics: dict[str, Any],
    aws_region: str,
    execution_id: str,
    namespace: str = "FeedIngest",
) -> None:
    """
    Send custom metrics to CloudWatch.

    Args:
        metrics: Dictionary containing execution metrics
        aws_region: AWS region for CloudWatch client
        execution_id: Execution ID for logging context
        namespace: CloudWatch namespace
    """
    metrics_logger = create_execution_logger("cloudwatch_metrics", execution_id)

    try:
        metrics_logger.info("Sending metrics to CloudWatch", metrics=metrics)
        cloudwatch = boto3.client("cloudwatch", region_name=aws_region)

        execution_success = metrics["feeds_failed"] == 0 and metrics["items_failed"] == 0
        dimensions = [{"Name": "ExecutionId", "Value": execution_id}]
        status_dimensions = [
            {"Name": "Status", "Value": "Success" if execution_success else "Failure"}
        ]

        counts = [
            ("FeedsProcessed", "feeds_processed"),
            ("FeedsFailed", "feeds_failed"),
            ("ItemsFound", "items_found"),
            ("PostsImported", "posts_imported"),
            ("ItemsSkipped", "items_skipped"),
            ("ItemsFailed", "items_failed"),
        ]
        metric_data = [
            {
                "MetricName": name,
                "Value": metrics[key],
                "Unit": "Count",
                "Dimensions": dimensions,
            }
            for name, key in counts
        ]
        metric_data.extend(
            [
                {
                    "MetricName": "ExecutionSuccess",
                    "Value": 1 if execution_success else 0,
                    "Unit": "Count",
                    "Dimensions": status_dimensions,
                },
                {
                    "MetricName": "ExecutionFailure",
                    "Value": 0 if execution_success else 1,
                    "Unit": "Count",
                    "Dimensions": status_dimensions,
                },
                {
                    "MetricName": "DeduplicationRate",
                    "Value": (
                        metrics["items_skipped"] / max(metrics["items_found"], 1)
                    )
                    * 100,
                    "Unit": "Percent",
                    "Dimensions": dimensions,
                },
            ]
        )

        # CloudWatch accepts at most 20 metrics per call
        batch_size = 20
        for i in range(0, len(metric_data), batch_size):
            batch = metric_data[i : i + batch_size]
            cloudwatch.put_metric_data(Namespace=namespace, MetricData=batch)
            metrics_logger.debug(f"Sent batch of {len(batch)} metrics to CloudWatch")

        metrics_logger.info(
            "Successfully sent metrics to CloudWatch",
            metrics_sent=len(metric_data),
            namespace=namespace,
            execution_success=execution_success,
        )

    except Exception as e:
        metrics_logger.error(f"Failed to send CloudWatch metrics: {e}", error=str(e))
