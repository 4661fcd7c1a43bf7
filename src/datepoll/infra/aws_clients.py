from __future__ import annotations

import boto3

from .config import AWS_REGION, TABLE_NAME

_ddb = None
_scheduler = None


def ddb():
    global _ddb
    if _ddb is None:
        _ddb = boto3.resource("dynamodb", region_name=AWS_REGION)
    return _ddb


def scheduler():
    global _scheduler
    if _scheduler is None:
        _scheduler = boto3.client("scheduler", region_name=AWS_REGION)
    return _scheduler


def table():
    if not TABLE_NAME:
        raise RuntimeError("TABLE_NAME is not set")
    return ddb().Table(TABLE_NAME)
