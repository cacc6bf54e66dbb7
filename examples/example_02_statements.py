"""Example 02: Statement builders.

This example demonstrates building SQL without entities:
- SELECT with joins, conditions, ordering and paging
- Expressions combined with & and |
- INSERT, UPDATE and DELETE builders
- Running raw statements against a SQLite adapter
"""

from relata import DB, SqliteAdapter


def main():
    """Run the statement builder example."""
    adapter = SqliteAdapter(":memory:")
    DB.query(
        "CREATE TABLE `cities` (`id` INTEGER PRIMARY KEY, `name` TEXT, `population` INTEGER)"
    ).exec(adapter)

    # Bare strings are identifiers; values are escaped with DB.esc() or passed as numbers.
    DB.insert("cities").values({"id": 1, "name": "Lisbon", "population": 545000}).values(
        {"id": 2, "name": "Porto", "population": 232000}
    ).values({"id": 3, "name": "Braga", "population": 193000}).exec(adapter, return_insert_id=False)

    big_or_lisbon = DB.expr("population", ">", 200000) | DB.expr("name", "=", DB.esc("Lisbon"))
    select = (
        DB.select("name", ("population", "people"))
        .from_("cities")
        .where(big_or_lisbon)
        .where("name", "NOT LIKE", DB.esc("B%"))
        .order_by("population", "DESC")
        .limit(10)
    )
    print(select.compile(adapter))
    for row in select.exec(adapter):
        print(f"  {row['name']}: {row['people']}")

    update = DB.update("cities").values({"population": 236000}).where("id", "=", 2)
    print(update.compile(adapter))
    update.exec(adapter)

    delete = DB.delete("cities").where("id", "IN", [3])
    print(delete.compile(adapter))
    print(f"  deleted {delete.exec(adapter)} row(s)")

    adapter.close()


if __name__ == "__main__":
    main()
