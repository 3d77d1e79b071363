"""
Example: Basic OData usage with odata_layer
===========================================

The same calls work against V2 and V4 services; only the configured
protocol version changes.
"""

from odata_layer import ConnectionContext, FilterBuilder, ODataAuth, ODataConfig, ODataSession
from odata_layer.odata import ODataService


def example_v4_query():
    """Filter, count and page through a V4 entity set."""

    cfg = ODataConfig(
        base_url="https://services.odata.org/",
        version="v4",
        verify=True,
    )

    with ODataSession(cfg) as sess:
        svc = ODataService(sess, "V4/TripPinServiceRW")

        # Discover what's available
        print("Entity Sets:", svc.service_document().entity_set_names())

        people = svc.find(
            "People",
            lambda q: (q
                       .select(["UserName", "FirstName", "LastName"])
                       .filter(FilterBuilder().where("FirstName").starts_with("R"))
                       .order_by("LastName")
                       .top(5)
                       .count()),
        )
        print(f"{people.count()} of {people.total_count} people")
        for person in people:
            print(person.id, person["FirstName"], person["LastName"])

        russell = svc.get("People", "russellwhyte", lambda q: q.expand("Friends"))
        friends = russell.get_navigation_property("Friends")
        print("Friends:", [f["UserName"] for f in friends or []])


def example_v2_paging():
    """Read every page of a V2 entity set."""

    cfg = ODataConfig(
        base_url="https://services.odata.org/",
        version="v2",
        auth=ODataAuth("basic", ("USER", "PASSWORD")),
    )

    with ODataSession(cfg) as sess:
        svc = ODataService(sess, "V2/Northwind/Northwind.svc")
        customers = svc.read_all(
            "Customers",
            lambda q: q.filter(FilterBuilder().where("Country").equals("Germany")).count(),
            max_pages=3,
        )
        print(f"Read {customers.count()} of {customers.total_count} customers")


def example_connection_context():
    """Using ConnectionContext with ODATA_* environment variables or a .env file."""

    # Reads ODATA_BASE_URL, ODATA_VERSION, ODATA_USER, ODATA_PASS, ODATA_BEARER_TOKEN
    with ConnectionContext(load_env=True) as conn:
        svc = conn.get_service("V4/TripPinServiceRW")
        airports = svc.find("Airports", lambda q: q.top(10))
        print(f"Found {airports.count()} airports")


if __name__ == "__main__":
    # Uncomment the example you want to run
    # example_v4_query()
    # example_v2_paging()
    # example_connection_context()
    pass
