import pytest

from indexer.sqlite_store import KnowledgeStore
from tests.helpers import write_doc


@pytest.fixture
def store(tmp_path):
    """An open store backed by a temporary database file."""
    with KnowledgeStore(str(tmp_path / "data" / "kb.db")) as s:
        yield s


@pytest.fixture
def android_corpus(tmp_path):
    """A small android knowledgebase with level folders and one topic folder."""
    root = tmp_path / "content" / "android"
    write_doc(
        root / "01_beginners" / "01. Intro to Android.md",
        body="Android is a mobile operating system. Activities are screens.\n",
        canonical_id="android-01", slug="intro-to-android", title='"Intro to Android"',
        number=1, tags=["android", "basics"], estimated_minutes=20,
    )
    write_doc(
        root / "01_beginners" / "02. Intro to Android Development.md",
        body="Android is a mobile operating system. Activities are screens you build.\n",
        canonical_id="android-02", slug="intro-to-android-development",
        title='"Intro to Android Development"', number=2, tags=["android", "basics"],
    )
    write_doc(
        root / "02_intermediate" / "03. Android Services - Complete Guide.md",
        body="Services run work in the background without a user interface.\n",
        canonical_id="android-03", slug="android-services", title='"Android Services - Complete Guide"',
        number=3, tags=["services"], prerequisites=["android-01"],
    )
    write_doc(
        root / "databases" / "01_fundamentals" / "04. Room Basics.md",
        body="Room wraps SQLite with compile-time checked queries.\n",
        canonical_id="android-04", slug="room-basics", title='"Room Basics"',
        number=4, tags=["database", "room"],
    )
    return root
