from __future__ import annotations

from datetime import date

import pytest

from hotel_aggregator.search import SearchParams, SearchValidationError

TODAY = date(2030, 6, 1)


def _params(**overrides) -> SearchParams:
    values = dict(city_code="NYC", check_in=date(2030, 6, 10), check_out=date(2030, 6, 12))
    values.update(overrides)
    return SearchParams(**values)


def test_valid_params_pass_and_report_nights():
    params = _params().validate(today=TODAY)
    assert params.nights == 2


def test_same_day_check_in_is_allowed():
    _params(check_in=TODAY, check_out=date(2030, 6, 2)).validate(today=TODAY)


@pytest.mark.parametrize(
    "overrides, field",
    [
        ({"city_code": "  "}, "city_code"),
        ({"check_in": date(2030, 5, 31)}, "check_in"),
        ({"check_out": date(2030, 6, 10)}, "check_out"),
        ({"check_out": date(2030, 6, 9)}, "check_out"),
        ({"adults": 0}, "adults"),
        ({"rooms": 0}, "rooms"),
    ],
)
def test_invalid_params_are_rejected(overrides, field):
    with pytest.raises(SearchValidationError) as excinfo:
        _params(**overrides).validate(today=TODAY)
    assert excinfo.value.field == field


def test_from_mapping_accepts_camel_case_and_defaults():
    params = SearchParams.from_mapping(
        {"cityCode": "par", "checkInDate": "2030-06-10", "checkOutDate": "2030-06-11"},
        default_adults=3,
    )
    assert params.city_code == "PAR"
    assert params.check_in == date(2030, 6, 10)
    assert params.adults == 3
    assert params.rooms == 1
    assert params.currency == "USD"


def test_from_mapping_reports_missing_fields():
    with pytest.raises(SearchValidationError) as excinfo:
        SearchParams.from_mapping({"cityCode": "NYC"})
    assert "checkInDate" in str(excinfo.value)


def test_from_mapping_rejects_malformed_dates():
    with pytest.raises(SearchValidationError):
        SearchParams.from_mapping({"cityCode": "NYC", "checkInDate": "soon", "checkOutDate": "2030-06-11"})


def test_from_mapping_rejects_malformed_radius():
    base = {"cityCode": "NYC", "checkInDate": "2030-06-10", "checkOutDate": "2030-06-11"}

    assert SearchParams.from_mapping({**base, "radius": "2.5"}).radius_km == 2.5
    with pytest.raises(SearchValidationError) as excinfo:
        SearchParams.from_mapping({**base, "radius": "wide"})
    assert excinfo.value.field == "radius_km"


def test_payload_includes_hotel_name_hint_only_when_set():
    assert "hotelName" not in _params().to_payload()
    payload = _params(hotel_name="Hotel Alpha").to_payload()
    assert payload["hotelName"] == "Hotel Alpha"
    assert payload["roomQuantity"] == 1
