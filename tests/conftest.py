"""
Global test configuration and fixtures for the session store

Provides an in-memory backend, a controllable clock, stores wired to both,
and helpers for building Starlette requests and reading Set-Cookie headers.
"""

import time
from http.cookies import SimpleCookie
from typing import Callable, Dict, Optional

import boto3
import pytest
from cryptography.fernet import Fernet
from starlette.requests import Request
from starlette.responses import Response

from sessionstore.core.codecs import FernetCodec
from sessionstore.db.memory import MemoryBackend
from sessionstore.sessions import SessionOptions
from sessionstore.store import DynamoDBStore


# ============================================================================
# Time and Storage Fixtures
# ============================================================================

class FakeClock:
    """Manually advanced replacement for time.time"""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(scope="function")
def clock():
    return FakeClock()


@pytest.fixture(scope="function")
def memory_backend():
    """Backend with a small page size so scans span several pages"""
    return MemoryBackend(page_size=3)


@pytest.fixture(scope="function")
def fernet_codec():
    return FernetCodec(Fernet.generate_key())


@pytest.fixture(scope="function")
def store(memory_backend, fernet_codec, clock):
    """Store on the memory backend with the sweeper left stopped"""
    session_store = DynamoDBStore(
        memory_backend,
        [fernet_codec],
        default_max_age=3600,
        options=SessionOptions(max_age=86400),
        clock=clock,
        start_sweeper=False,
    )
    yield session_store
    session_store.close()


@pytest.fixture(scope="function")
def dynamodb_client():
    """Real botocore client with dummy credentials, for use with Stubber"""
    return boto3.client(
        "dynamodb",
        region_name="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )


# ============================================================================
# HTTP Helpers
# ============================================================================

def build_request(cookies: Optional[Dict[str, str]] = None) -> Request:
    """Create a bare Starlette request carrying the given cookies"""
    headers = []
    if cookies:
        cookie_header = "; ".join(f"{name}={value}" for name, value in cookies.items())
        headers.append((b"cookie", cookie_header.encode("latin-1")))
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "query_string": b"",
        "headers": headers,
    }
    return Request(scope)


def parse_set_cookies(response: Response) -> SimpleCookie:
    """Collect every Set-Cookie header of a response into one SimpleCookie"""
    jar = SimpleCookie()
    for header in response.headers.getlist("set-cookie"):
        jar.load(header)
    return jar


@pytest.fixture(scope="function")
def make_request() -> Callable[..., Request]:
    return build_request


@pytest.fixture(scope="function")
def set_cookies() -> Callable[[Response], SimpleCookie]:
    return parse_set_cookies


def wait_for_condition(condition: Callable[[], bool], timeout: float = 5.0, interval: float = 0.01) -> bool:
    """Wait for a condition to become true with timeout"""
    start_time = time.monotonic()
    while time.monotonic() - start_time < timeout:
        if condition():
            return True
        time.sleep(interval)
    return False


@pytest.fixture(scope="function")
def wait_for() -> Callable[..., bool]:
    return wait_for_condition


# ============================================================================
# Test Markers and Configuration
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "unit: isolated tests against in-memory or stubbed backends"
    )
    config.addinivalue_line(
        "markers", "integration: tests that drive the store through a web framework"
    )
    config.addinivalue_line(
        "markers", "security: mark test as security-related"
    )


def pytest_collection_modifyitems(config, items):
    """Add markers based on file location"""
    for item in items:
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        if "security" in str(item.fspath):
            item.add_marker(pytest.mark.security)
