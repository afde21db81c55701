"""Tests for /api/vehicles routes."""

from uuid import uuid4

from core.models import ErrorKind, ServiceResult, Vehicle, VehicleStatus


class TestVehicleRoutes:
    """Inventory over HTTP."""

    def test_vin_query_uses_vin_search(self, client, vehicle_service, make_vehicle_row):
        vehicle_service.search_by_vin.return_value = ServiceResult.ok([Vehicle.model_validate(make_vehicle_row())])

        response = client.get("/api/vehicles", params={"vin": "4352", "make": "Honda"})

        assert response.json()["data"][0]["vin"] == "1HGCM82633A004352"
        vehicle_service.search_by_vin.assert_called_once_with("4352")
        vehicle_service.list.assert_not_called()

    def test_list_filters(self, client, vehicle_service):
        vehicle_service.list.return_value = ServiceResult.ok([])

        client.get("/api/vehicles", params={"status": "in_transit", "year_min": 2019})

        filters, _, _ = vehicle_service.list.call_args.args
        assert filters.status == VehicleStatus.IN_TRANSIT
        assert filters.year_min == 2019

    def test_create_duplicate_vin_is_409(self, client, vehicle_service):
        vehicle_service.create.return_value = ServiceResult.fail(
            "Vehicle with VIN 1HGCM82633A004352 already exists", ErrorKind.CONFLICT
        )

        response = client.post("/api/vehicles", json={
            "vin": "1HGCM82633A004352", "year": 2021, "make": "Toyota", "model": "Camry",
        })

        assert response.status_code == 409

    def test_create_invalid_vin_is_400(self, client, vehicle_service):
        response = client.post("/api/vehicles", json={"vin": "TOO-SHORT", "year": 2021, "make": "Toyota", "model": "Camry"})

        assert response.status_code == 400
        vehicle_service.create.assert_not_called()

    def test_status_change(self, client, vehicle_service, make_vehicle_row, user_headers, test_user_id):
        row = make_vehicle_row(current_status="sold")
        vehicle_service.update_status.return_value = ServiceResult.ok(Vehicle.model_validate(row))

        response = client.patch(f"/api/vehicles/{row['id']}/status", headers=user_headers, json={"status": "sold"})

        assert response.json()["data"]["currentStatus"] == "sold"
        vehicle_service.update_status.assert_called_once_with(
            row["id"], VehicleStatus.SOLD, updated_by=test_user_id
        )

    def test_get_not_found(self, client, vehicle_service):
        vehicle_service.get_by_id.return_value = ServiceResult.fail("Vehicle not found", ErrorKind.NOT_FOUND)

        assert client.get(f"/api/vehicles/{uuid4()}").status_code == 404
