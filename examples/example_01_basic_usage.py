"""Example 01: Basic Usage - Relata Fundamentals.

This example demonstrates the fundamental operations:
- Describing entity storage in a ``setup`` hook
- One-to-many relations, secondary tables and embedded value objects
- Creating tables with generate_schema()
- Saving object graphs with entity.save()
- Loading graphs with ObjectQuery(...).with_(...)
- Deleting with an on-delete policy
"""

from relata import (
    DB,
    Column,
    Component,
    Embeddable,
    Embedded,
    Entity,
    ObjectQuery,
    SqliteAdapter,
    default_registry,
)
from relata.ddl import generate_schema


# Step 1: Describe the storage
# Every entity fills in its mapping schema once, the first time it is used.
class Address(Embeddable):
    """A postal address stored inline in its owner's table."""

    @classmethod
    def setup(cls, schema):
        schema.columns = {
            "city": Column("string"),
            "street": Column("string"),
        }


class Author(Entity):
    """A writer of books."""

    @classmethod
    def setup(cls, schema):
        schema.table = "authors"
        schema.secondary_tables = ["author_contacts"]
        schema.columns = {
            "id": Column("int", primary=True, generation_strategy="auto"),
            "name": Column("string", constraints={"max_length": 80, "not null": True}),
            "email": Column("string", table="author_contacts"),
        }
        schema.components = {
            "books": Component("Book", "one-to-many", join_column="author_id", on_delete="set-null"),
            "address": Embedded(Address),
        }


class Book(Entity):
    """A book, pointing at its author through ``author_id``."""

    @classmethod
    def setup(cls, schema):
        schema.table = "books"
        schema.columns = {
            "id": Column("int", primary=True, generation_strategy="auto"),
            "title": Column("string"),
            "year": Column("int"),
            "author_id": Column("int"),
        }
        schema.components = {
            "author": Component("Author", "many-to-one", mapped_by="books"),
        }


def main():
    """Run the basic usage example."""
    print("=" * 80)
    print("RELATA BASIC USAGE EXAMPLE")
    print("=" * 80)

    # Step 2: Connect and create the tables
    adapter = SqliteAdapter(":memory:")
    default_registry.bind(adapter)
    for sql in generate_schema([Author, Book], adapter):
        print(f"  {sql}")

    # Step 3: Save an object graph
    # Saving the author inserts its rows first, then the books with author_id filled in.
    print("\nSaving authors and books...")
    ursula = Author(name="Ursula K. Le Guin", email="ursula@example.com")
    ursula.address = Address(city="Portland")
    ursula.books.extend(
        [
            Book(title="A Wizard of Earthsea", year=1968),
            Book(title="The Dispossessed", year=1974),
        ]
    )
    ursula.save()

    terry = Author(name="Terry Pratchett")
    Book(title="Mort", year=1987, author=terry).save()
    print(f"✓ Saved authors {ursula.pk()} and {terry.pk()}")

    # Step 4: Query
    # with_() joins relations so the whole graph is loaded by one SELECT.
    print("\nAuthors with their books:")
    for author in ObjectQuery(Author).with_("books").order_by("name").all():
        titles = ", ".join(book.title for book in author.books)
        print(f"  {author.name} ({author.email}): {titles}")

    print("\nBooks published before 1980:")
    query = ObjectQuery(Book).with_("author").where("year", "<", 1980).order_by("year")
    print(f"  SQL: {query.compile().sql}")
    for book in query.all():
        print(f"  {book.year} {book.title} by {book.author.name}")

    print("\nAuthors living in Portland:")
    for author in ObjectQuery(Author).where("address.city", "=", DB.esc("Portland")).all():
        print(f"  {author.name}")

    # Step 5: Update and delete
    ursula.email = "ursula.leguin@example.com"
    ursula.save()

    terry.delete()
    orphans = ObjectQuery(Book).where("author_id", "IS NULL").all()
    print(f"\n✓ Deleted Terry Pratchett; books without an author: {[b.title for b in orphans]}")

    default_registry.unbind()
    adapter.close()


if __name__ == "__main__":
    main()
