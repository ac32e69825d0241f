"""Sheet headers and store doubles shared by the tests (the parser only looks at positions)."""

from campaign_import.db.memory_store import MemoryStore
from campaign_import.errors import StorageUnavailableError, UpsertError

REVIEW_HEADER = ["접수번호", "업체명", "리뷰원고", "리뷰등록날짜", "영수증날짜", "상태", "리뷰링크", "리뷰id"]
BLOG_HEADER = ["접수번호", "업체명", "제목", "발행일", "상태", "링크", "블로그id"]
CAFE_HEADER = ["접수번호", "업체명", "제목", "발행일", "상태", "링크", "작성자id", "카페명"]
PLACE_HEADER = ["접수번호", "업체명", "날짜", "완료수", "비고"]


class FlakyStore(MemoryStore):
    """Fails upserts for selected dates."""

    def __init__(self, submissions, fail_dates=()):
        super().__init__(submissions)
        self.fail_dates = set(fail_dates)

    def upsert_record(self, binding, key, values):
        if key.date in self.fail_dates:
            raise UpsertError(f"duplicate key value violates constraint ({key.date})")
        return super().upsert_record(binding, key, values)


class UnavailableStore(MemoryStore):
    """Loses the connection on the first write to `storage_key`."""

    def __init__(self, submissions, storage_key):
        super().__init__(submissions)
        self.storage_key = storage_key

    def upsert_record(self, binding, key, values):
        if binding.storage_key == self.storage_key:
            raise StorageUnavailableError("server closed the connection unexpectedly")
        return super().upsert_record(binding, key, values)
