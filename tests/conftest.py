# FILE: tests/conftest.py
"""
Pytest configuration for the NTPU bot core test suite.

Configures:
- pytest-asyncio for async test support
- Shared fixtures: metrics, a manual clock, a small in-memory catalog
"""
import sys
from datetime import date
from pathlib import Path

import pytest

_project_root = Path(__file__).parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

# Configure pytest-asyncio to use auto mode
pytest_plugins = ["pytest_asyncio"]


class ManualClock:
    """Monotonic clock the test advances by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


SAMPLE_CATALOG = {
    "courses": [
        {"uid": "1131U0001", "title": "微積分", "teachers": ["王大明"], "times": ["一2", "一3"],
         "locations": ["商1F01"], "note": "大一必修"},
        {"uid": "1131U0002", "title": "資料結構", "teachers": ["李小華"], "note": "程式設計 演算法"},
        {"uid": "1131U0003", "title": "雲端運算概論", "teachers": ["陳雲"], "note": "AWS 雲端服務 實作"},
        {"uid": "1122U0004", "title": "統計學", "teachers": ["林統"], "note": "資料分析"},
        {"uid": "1112U0005", "title": "線性代數", "teachers": ["王大明"]},
    ],
    "students": [
        {"id": "412345678", "name": "王小明", "department": "資訊工程學系"},
        {"id": "412345679", "name": "王小美", "department": "統計學系"},
        {"id": "41234567", "name": "陳大文", "department": "法律學系"},
    ],
    "contacts": [
        {"name": "資訊工程學系", "organization": "電機資訊學院", "phone": "0286741111",
         "extension": "66101", "email": "csie@ntpu.edu.tw"},
        {"name": "圖書館", "organization": "圖書館", "extension": "66666"},
        {"name": "學生事務處", "organization": "學務處", "extension": "66000"},
    ],
    "programs": [
        {"name": "人工智慧學程", "category": "跨域", "courses": [
            {"uid": "1131U0002", "type": "必"},
            {"uid": "1131U0003", "type": "選"},
        ]},
        {"name": "金融科技學程", "category": "跨域", "courses": [
            {"uid": "1122U0004", "type": "必"},
        ]},
    ],
}


@pytest.fixture
def manual_clock():
    return ManualClock()


@pytest.fixture
def metrics():
    from app.metrics.tracker import BotMetrics
    return BotMetrics()


@pytest.fixture
def catalog():
    """Catalog whose recent semesters resolve to 113-1 and 112-2."""
    from app.modules.catalog import InMemoryCatalog
    return InMemoryCatalog.from_dict(SAMPLE_CATALOG)


@pytest.fixture
def sample_catalog_dict():
    return SAMPLE_CATALOG


@pytest.fixture
def fixed_today():
    return date(2024, 10, 15)
