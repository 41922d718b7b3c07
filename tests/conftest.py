import pytest

from asset_catalog.catalog import AssetCatalog
from asset_catalog.services.storage_service import ObjectStorageService

from .fakes import FakeDatabase, FakeS3Client


@pytest.fixture
def db():
    return FakeDatabase()


@pytest.fixture
def s3():
    return FakeS3Client()


@pytest.fixture
def storage(s3):
    return ObjectStorageService(client=s3, bucket="assets", region="us-east-1", cdn_domain="")


@pytest.fixture
def catalog(db, storage):
    catalog = AssetCatalog(db=db, storage=storage)
    catalog.uploads.backoff_base = 0
    return catalog
