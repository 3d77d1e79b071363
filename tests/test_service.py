"""
Tests for odata_layer.odata.service.
"""

import json

import pytest
from unittest.mock import Mock

from odata_layer.core.errors import InvalidArgument, MalformedResponse
from odata_layer.odata.entity import Entity, EntityCollection
from odata_layer.odata.filters import FilterBuilder
from odata_layer.odata.query import QueryOptions
from odata_layer.odata.service import ODataService
from odata_layer.odata.service_document import ServiceDocument


def _page(names, next_link=None, count=None):
    body = {"value": [{"UserName": n} for n in names]}
    if next_link:
        body["@odata.nextLink"] = next_link
    if count is not None:
        body["@odata.count"] = count
    return body


class TestReads:
    """Tests for get/find/count."""

    def test_query_speaks_session_version(self, mock_session, mock_v2_session):
        assert ODataService(mock_session).query("People").get_options() == {}
        with pytest.raises(InvalidArgument):
            ODataService(mock_v2_session).query().search("x")
        assert isinstance(ODataService(mock_session).query(), QueryOptions)

    def test_find(self, mock_session, response_factory, sample_v4_collection):
        mock_session.get = Mock(return_value=response_factory(sample_v4_collection))

        svc = ODataService(mock_session, "/TripPin/")
        people = svc.find(
            "People",
            lambda q: q.filter(FilterBuilder().where("FirstName").starts_with("R")).top(2).count(),
        )

        mock_session.get.assert_called_once_with(
            "TripPin/People",
            {"$filter": "startswith(FirstName,'R')", "$top": 2, "$count": "true"},
        )
        assert isinstance(people, EntityCollection)
        assert people.total_count == 20
        assert people.first().id == "russellwhyte"

    def test_find_v2_uses_inlinecount(self, mock_v2_session, response_factory, sample_v2_collection):
        mock_v2_session.get = Mock(return_value=response_factory(sample_v2_collection))

        customers = ODataService(mock_v2_session, "NW").find("Customers", lambda q: q.count())

        mock_v2_session.get.assert_called_once_with("NW/Customers", {"$inlinecount": "allpages"})
        assert customers.total_count == 91
        assert customers.first().entity_type == "Customer"

    def test_get(self, mock_session, response_factory, sample_v4_entity):
        mock_session.get = Mock(return_value=response_factory(sample_v4_entity))

        person = ODataService(mock_session, "TripPin").get("People", "russellwhyte", lambda q: q.expand("Friends"))

        mock_session.get.assert_called_once_with("TripPin/People('russellwhyte')", {"$expand": "Friends"})
        assert person.id == "russellwhyte"
        assert person.get_navigation_property("BestFriend")["UserName"] == "keithpinckney"

    def test_get_composite_key(self, mock_session, response_factory):
        mock_session.get = Mock(return_value=response_factory({"OrderID": 1}))

        ODataService(mock_session).get("Order_Details", {"OrderID": 1, "ProductID": 2})

        mock_session.get.assert_called_once_with("Order_Details(OrderID=1,ProductID=2)", {})

    def test_count(self, mock_session, response_factory):
        mock_session.request = Mock(return_value=response_factory("42"))

        assert ODataService(mock_session, "TripPin").count("People") == 42
        mock_session.request.assert_called_once_with(
            "GET",
            "TripPin/People/$count",
            params={},
            headers={"Accept": "text/plain"},
            include_format=False,
        )


class TestPaging:
    """Tests for iterate/read_all."""

    def test_iterate_follows_next_links(self, mock_session, response_factory):
        mock_session.get = Mock(side_effect=[
            response_factory(_page(["a"], "https://h/People?$skiptoken=1", count=3)),
            response_factory(_page(["b"], "https://h/People?$skiptoken=2")),
            response_factory(_page(["c"])),
        ])

        pages = list(ODataService(mock_session).iterate("People"))

        assert [[e["UserName"] for e in p] for p in pages] == [["a"], ["b"], ["c"]]
        assert mock_session.get.call_args_list[1].args == ("https://h/People?$skiptoken=1",)

    def test_iterate_max_pages(self, mock_session, response_factory):
        mock_session.get = Mock(side_effect=[
            response_factory(_page(["a"], "https://h/People?$skiptoken=1")),
            response_factory(_page(["b"], "https://h/People?$skiptoken=2")),
        ])

        pages = list(ODataService(mock_session).iterate("People", max_pages=1))

        assert len(pages) == 1
        assert mock_session.get.call_count == 1

    def test_iterate_stops_on_repeated_link(self, mock_session, response_factory):
        loop = "https://h/People?$skiptoken=1"
        mock_session.get = Mock(side_effect=[
            response_factory(_page(["a"], loop)),
            response_factory(_page(["b"], loop)),
        ])

        pages = list(ODataService(mock_session).iterate("People"))

        assert len(pages) == 2
        assert mock_session.get.call_count == 2

    def test_iterate_skips_empty_pages(self, mock_session, response_factory):
        mock_session.get = Mock(return_value=response_factory(_page([])))
        assert list(ODataService(mock_session).iterate("People")) == []

    def test_relative_next_link(self, mock_session, response_factory):
        mock_session.get = Mock(side_effect=[
            response_factory(_page(["a"], "People?$skiptoken=1")),
            response_factory(_page(["b"])),
        ])

        list(ODataService(mock_session, "TripPin").iterate("People"))

        assert mock_session.get.call_args_list[1].args == (
            "https://test.example.com/odata/TripPin/People?$skiptoken=1",
        )

    def test_v2_paging(self, mock_v2_session, response_factory):
        mock_v2_session.get = Mock(side_effect=[
            response_factory({"d": {"results": [{"ID": "001"}], "__next": "https://h/Items?$skiptoken=1"}}),
            response_factory({"d": {"results": [{"ID": "002"}]}}),
        ])

        items = ODataService(mock_v2_session, "SRV").read_all("Items")

        assert [e["ID"] for e in items] == ["001", "002"]

    def test_read_all(self, mock_session, response_factory):
        mock_session.get = Mock(side_effect=[
            response_factory(_page(["a", "b"], "https://h/People?$skiptoken=2", count=3)),
            response_factory(_page(["c"])),
        ])

        people = ODataService(mock_session).read_all("People", lambda q: q.count())

        assert people.count() == 3
        assert people.total_count == 3
        assert people.next_link is None

    def test_read_all_truncated(self, mock_session, response_factory):
        mock_session.get = Mock(return_value=response_factory(_page(["a"], "https://h/People?$skiptoken=1")))

        people = ODataService(mock_session).read_all("People", max_pages=1)

        assert people.count() == 1
        assert people.next_link == "https://h/People?$skiptoken=1"


class TestWrites:
    """Tests for create/update/merge/delete."""

    def test_create_returns_server_entity(self, mock_session, response_factory):
        mock_session.request = Mock(return_value=response_factory(
            {"@odata.id": "https://h/People('new')", "UserName": "new"}, status=201,
        ))

        created = ODataService(mock_session, "TripPin").create("People", {"UserName": "new"})

        args, kwargs = mock_session.request.call_args
        assert args == ("POST", "TripPin/People")
        assert kwargs["headers"] == {"Content-Type": "application/json;charset=utf-8"}
        assert json.loads(kwargs["data"]) == {"UserName": "new"}
        assert created.id == "new"
        assert created.is_new is False

    def test_create_no_content(self, mock_session, response_factory):
        mock_session.request = Mock(return_value=response_factory(
            "", status=204, headers={"Location": "https://h/TripPin/People('new')", "ETag": "W/\"1\""},
        ))
        entity = Entity("Person", {"UserName": "new"})

        created = ODataService(mock_session, "TripPin").create("People", entity)

        assert created is entity
        assert created.id == "new"
        assert created.etag == 'W/"1"'
        assert created.is_new is False

    def test_update_sends_if_match(self, mock_session, response_factory):
        mock_session.request = Mock(return_value=response_factory("", status=204, headers={"ETag": "W/\"2\""}))
        entity = Entity("Person", {"FirstName": "R"}, id="russellwhyte", etag="W/\"1\"")

        updated = ODataService(mock_session).update("People", "russellwhyte", entity)

        args, kwargs = mock_session.request.call_args
        assert args == ("PUT", "People('russellwhyte')")
        assert kwargs["headers"]["If-Match"] == 'W/"1"'
        assert updated.etag == 'W/"2"'
        assert updated.id == "russellwhyte"

    def test_update_keeps_etag_when_none_returned(self, mock_session, response_factory):
        mock_session.request = Mock(return_value=response_factory("", status=204))

        updated = ODataService(mock_session).update("People", "x", {"FirstName": "R"}, etag="W/\"5\"")

        assert updated.etag == 'W/"5"'
        assert updated.is_new is False

    def test_merge_method_per_version(self, mock_session, mock_v2_session, response_factory):
        for sess, method in ((mock_session, "PATCH"), (mock_v2_session, "MERGE")):
            sess.request = Mock(return_value=response_factory("", status=204))
            ODataService(sess).merge("Products", 1, {"Price": 2})
            assert sess.request.call_args.args == (method, "Products(1)")

    def test_merge_returns_body_when_sent(self, mock_session, response_factory):
        mock_session.request = Mock(return_value=response_factory({"ID": 1, "Price": 2}, status=200))
        assert ODataService(mock_session).merge("Products", 1, {"Price": 2})["Price"] == 2

    def test_delete(self, mock_session, response_factory):
        mock_session.request = Mock(return_value=response_factory("", status=204))
        assert ODataService(mock_session).delete("Products", 1, etag="*") is True
        mock_session.request.assert_called_once_with("DELETE", "Products(1)", headers={"If-Match": "*"})

        mock_session.request = Mock(return_value=response_factory("", status=200))
        assert ODataService(mock_session).delete("Products", 1) is False


class TestOperations:
    """Tests for functions, actions and batches."""

    def test_v4_unbound_function_inline_parameters(self, mock_session, response_factory):
        mock_session.get = Mock(return_value=response_factory({
            "@odata.context": "https://h/$metadata#Airports/$entity",
            "Name": "LAX",
        }))

        airport = ODataService(mock_session, "TripPin").call_function(
            "GetNearestAirport", {"lat": 33, "lon": -118},
        )

        mock_session.get.assert_called_once_with("TripPin/GetNearestAirport(lat=33,lon=-118)", {})
        assert isinstance(airport, Entity)
        assert airport.entity_type == "Airports"

    def test_v4_function_without_parameters_returns_value(self, mock_session, response_factory):
        mock_session.get = Mock(return_value=response_factory({"@odata.context": "x", "value": 5}))

        assert ODataService(mock_session).call_function("GetCount") == 5
        assert mock_session.get.call_args.args[0] == "GetCount()"

    def test_v4_function_returning_collection(self, mock_session, response_factory):
        mock_session.get = Mock(return_value=response_factory({"value": [{"Name": "A"}]}))
        assert isinstance(ODataService(mock_session).call_function("Fn"), EntityCollection)

    def test_v4_bound_function_uses_query_options(self, mock_session, response_factory):
        mock_session.get = Mock(return_value=response_factory({"value": []}))

        ODataService(mock_session).call_function(
            "NS.GetFriendsTrips", {"userName": "x"}, binding_entity_set="People", binding_key="russellwhyte",
        )

        mock_session.get.assert_called_once_with(
            "People('russellwhyte')/NS.GetFriendsTrips", {"userName": "'x'"},
        )

    def test_v2_service_operation(self, mock_v2_session, response_factory):
        mock_v2_session.get = Mock(return_value=response_factory({"d": {"results": [{"ID": 1}]}}))

        result = ODataService(mock_v2_session, "SRV").call_function("GetProductsByRating", {"rating": 3})

        mock_v2_session.get.assert_called_once_with("SRV/GetProductsByRating", {"rating": "3"})
        assert result.count() == 1

    def test_v2_function_entity_and_value(self, mock_v2_session, response_factory):
        mock_v2_session.get = Mock(return_value=response_factory({"d": {"__metadata": {"type": "NS.P"}, "ID": 1}}))
        assert ODataService(mock_v2_session).call_function("Top").entity_type == "P"

        mock_v2_session.get = Mock(return_value=response_factory({"d": {"Total": 7}}))
        assert ODataService(mock_v2_session).call_function("Total") == {"Total": 7}

    def test_function_enum_and_json_parameters(self, mock_session, response_factory):
        mock_session.get = Mock(return_value=response_factory({"value": 1}))

        ODataService(mock_session).call_function("Fn", {"c": "NS.Color'Red'", "ids": [1, 2]})

        assert mock_session.get.call_args.args[0] == "Fn(c=NS.Color'Red',ids=[1, 2])"

    def test_action_no_content(self, mock_session, response_factory):
        mock_session.request = Mock(return_value=response_factory("", status=204))

        assert ODataService(mock_session, "TripPin").call_action("ResetDataSource") is True
        mock_session.request.assert_called_once_with("POST", "TripPin/ResetDataSource", headers={}, data=None)

    def test_bound_action_with_parameters(self, mock_session, response_factory):
        mock_session.request = Mock(return_value=response_factory({"@odata.id": "https://h/Trips(1)", "Name": "T"}))

        trip = ODataService(mock_session).call_action(
            "NS.ShareTrip", {"tripId": 1}, binding_entity_set="People", binding_key="x",
        )

        args, kwargs = mock_session.request.call_args
        assert args == ("POST", "People('x')/NS.ShareTrip")
        assert json.loads(kwargs["data"]) == {"tripId": 1}
        assert trip.id == 1

    def test_batch(self, mock_session, response_factory):
        mock_session.request = Mock(return_value=response_factory(
            {"responses": [{"id": "1", "status": 200, "body": {"value": []}}]},
        ))

        responses = ODataService(mock_session, "TripPin").execute_batch([{"method": "GET", "url": "People"}])

        assert responses == [{"id": "1", "status": 200, "body": {"value": []}}]
        args, kwargs = mock_session.request.call_args
        assert args == ("POST", "TripPin/$batch")
        part = json.loads(kwargs["data"])["requests"][0]
        assert part["url"] == "People"
        assert part["headers"]["OData-Version"] == "4.0"

    def test_batch_rejected_for_v2(self, mock_v2_session):
        with pytest.raises(InvalidArgument):
            ODataService(mock_v2_session).execute_batch([{"method": "GET", "url": "Items"}])

    def test_batch_malformed_response(self, mock_session, response_factory):
        mock_session.request = Mock(return_value=response_factory({"value": []}))
        with pytest.raises(MalformedResponse):
            ODataService(mock_session).execute_batch([{"method": "GET", "url": "People"}])


class TestDiscovery:
    """Tests for service and metadata documents."""

    def test_service_document(self, mock_session, response_factory):
        mock_session.get = Mock(return_value=response_factory({
            "value": [{"name": "People", "kind": "EntitySet", "url": "People"}],
        }))

        doc = ODataService(mock_session, "TripPin").service_document()

        mock_session.get.assert_called_once_with("TripPin/")
        assert isinstance(doc, ServiceDocument)
        assert doc.entity_set_names() == ["People"]

    def test_metadata_document(self, mock_session, sample_metadata_xml):
        mock_session.get_text = Mock(return_value=sample_metadata_xml)

        xml = ODataService(mock_session, "TripPin").metadata_document()

        mock_session.get_text.assert_called_once_with("TripPin/$metadata")
        assert "TestEntities" in xml
