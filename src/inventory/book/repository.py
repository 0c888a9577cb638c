"""Repository for the Book aggregate."""

from inventory.book.book import Book
from inventory.domain import inventory
from inventory.shared.paging import fetch_all


@inventory.repository(part_of=Book)
class BookRepository:
    def find_active(self) -> list[Book]:
        return fetch_all(self._dao, is_active=True)

    def known_ids(self) -> set[str]:
        return {str(book.id) for book in fetch_all(self._dao)}

    def find_by_isbn(self, isbn: str) -> Book | None:
        books = self._dao.query.filter(isbn=isbn).all().items
        return books[0] if books else None
