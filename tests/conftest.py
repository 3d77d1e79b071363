"""
Pytest configuration and shared fixtures.
"""

import json

import pytest
from unittest.mock import Mock

from odata_layer.core.config import ProtocolVersion
from odata_layer.core.session import HttpResponse


def make_response(body="", status=200, headers=None, url="https://test.example.com/odata/"):
    """Build an HttpResponse; dict/list bodies are JSON-encoded."""
    if not isinstance(body, str):
        body = json.dumps(body)
    return HttpResponse(status=status, headers=headers or {}, body=body, url=url)


@pytest.fixture
def response_factory():
    return make_response


def _mock_session(version):
    session = Mock()
    session.version = version
    session.base = "https://test.example.com/odata/"
    session.timeout = 60.0
    session.verify = True
    session.session = Mock()
    session.url = Mock(side_effect=lambda path, params=None: f"https://test.example.com/odata/{path}")
    return session


@pytest.fixture
def mock_session():
    """Create a mock ODataSession speaking V4."""
    return _mock_session(ProtocolVersion.V4)


@pytest.fixture
def mock_v2_session():
    """Create a mock ODataSession speaking V2."""
    return _mock_session(ProtocolVersion.V2)


@pytest.fixture
def sample_v2_collection():
    """Sample OData V2 collection response."""
    return {
        "d": {
            "results": [
                {
                    "__metadata": {
                        "uri": "https://test.example.com/odata/NW/Customers('ALFKI')",
                        "type": "NorthwindModel.Customer",
                        "etag": "W/\"1\"",
                    },
                    "CustomerID": "ALFKI",
                    "CompanyName": "Alfreds Futterkiste",
                },
                {
                    "__metadata": {
                        "uri": "https://test.example.com/odata/NW/Customers('ANATR')",
                        "type": "NorthwindModel.Customer",
                    },
                    "CustomerID": "ANATR",
                    "CompanyName": "Ana Trujillo",
                },
            ],
            "__count": "91",
            "__next": "https://test.example.com/odata/NW/Customers?$skiptoken='ANATR'",
        }
    }


@pytest.fixture
def sample_v4_collection():
    """Sample OData V4 collection response."""
    return {
        "@odata.context": "https://test.example.com/odata/TripPin/$metadata#People",
        "@odata.count": 20,
        "@odata.nextLink": "https://test.example.com/odata/TripPin/People?$skiptoken=2",
        "value": [
            {
                "@odata.id": "https://test.example.com/odata/TripPin/People('russellwhyte')",
                "@odata.etag": "W/\"08D1694BD49A6D7A\"",
                "UserName": "russellwhyte",
                "FirstName": "Russell",
                "Emails": ["Russell@example.com"],
            },
            {
                "@odata.id": "https://test.example.com/odata/TripPin/People('scottketchum')",
                "UserName": "scottketchum",
                "FirstName": "Scott",
                "Emails": [],
            },
        ],
    }


@pytest.fixture
def sample_v4_entity():
    """Sample OData V4 single entity with expanded navigation."""
    return {
        "@odata.context": "https://test.example.com/odata/TripPin/$metadata#People/$entity",
        "@odata.id": "https://test.example.com/odata/TripPin/People('russellwhyte')",
        "@odata.etag": "W/\"08D1694BD49A6D7A\"",
        "UserName": "russellwhyte",
        "FirstName": "Russell",
        "AddressInfo": [],
        "Friends@odata.count": 3,
        "Friends": [
            {"@odata.type": "#Microsoft.OData.SampleService.Models.TripPin.Person", "UserName": "scottketchum"},
            {"UserName": "ronaldmundy"},
        ],
        "BestFriend": {"UserName": "keithpinckney"},
    }


@pytest.fixture
def sample_metadata_xml():
    """Sample OData $metadata XML."""
    return """<?xml version="1.0" encoding="utf-8"?>
<edmx:Edmx Version="4.0" xmlns:edmx="http://docs.oasis-open.org/odata/ns/edmx">
  <edmx:DataServices>
    <Schema Namespace="TestService" xmlns="http://docs.oasis-open.org/odata/ns/edm">
      <EntityType Name="TestEntity">
        <Key><PropertyRef Name="ID"/></Key>
        <Property Name="ID" Type="Edm.String" Nullable="false"/>
      </EntityType>
      <EntityContainer Name="Container">
        <EntitySet Name="TestEntities" EntityType="TestService.TestEntity"/>
      </EntityContainer>
    </Schema>
  </edmx:DataServices>
</edmx:Edmx>"""
