"""Shared BDD fixtures and step definitions for inventory records."""

from inventory.book.book import Book
from inventory.book.catalog import AddBook
from inventory.stock.locking import process_serialized
from inventory.stock.receiving import RecordOutbound
from inventory.stock.record import InventoryRecord
from inventory.stock.reservation import ReserveStock
from inventory.store.management import OpenStore
from protean import current_domain
from pytest_bdd import given, parsers, then


def _record_at(book_id, store_id):
    return current_domain.repository_for(InventoryRecord).find_for_book_and_store(book_id, store_id)


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.parse('the stores "{first}", "{second}" and "{third}" are open'), target_fixture="store_ids")
def _(first, second, third):
    return {
        code: current_domain.process(OpenStore(name=f"Store {code}", code=code), asynchronous=False)
        for code in (first, second, third)
    }


@given(parsers.cfparse("a book with {copies:d} copies is added to the catalogue"), target_fixture="book_id")
def _(store_ids, copies):
    return current_domain.process(AddBook(title="María", initial_stock=copies), asynchronous=False)


@given(parsers.cfparse('{quantity:d} copies were reserved for "{ref}"'))
def _(book_id, quantity, ref):
    process_serialized(ReserveStock(book_id=book_id, quantity=quantity, reservation_ref=ref))


@given(parsers.cfparse('{quantity:d} copies were sold at store "{code}"'))
def _(book_id, store_ids, quantity, code):
    process_serialized(RecordOutbound(book_id=book_id, store_id=store_ids[code], quantity=quantity))


@given(parsers.parse('the record at store "{code}" is "{status}"'))
def _(book_id, store_ids, code, status):
    assert _record_at(book_id, store_ids[code]).status == status


# ---------------------------------------------------------------------------
# Then steps — shared assertions
# ---------------------------------------------------------------------------
@then(parsers.cfparse('store "{code}" holds {total:d} copies with {available:d} available'))
def _(book_id, store_ids, code, total, available):
    record = _record_at(book_id, store_ids[code])
    assert (record.stock_total, record.stock_available) == (total, available)


@then(parsers.cfparse("the book's cached stock is {stock:d}"))
def _(book_id, stock):
    assert current_domain.repository_for(Book).get(book_id).stock == stock


@then(parsers.parse('the record at store "{code}" is "{status}"'))
def _(book_id, store_ids, code, status):
    assert _record_at(book_id, store_ids[code]).status == status


@then("the book is flagged as historical")
def _(book_id):
    assert current_domain.repository_for(Book).get(book_id).is_historical is True


@then("no copies are reserved")
def _(book_id):
    records = current_domain.repository_for(InventoryRecord).find_for_book(book_id)
    assert sum(record.stock_reserved for record in records) == 0
