"""
API tests for application intake, finalize, status and documents.
"""
import unittest
import uuid
from unittest.mock import AsyncMock, patch

from sqlalchemy import func, select

from models import Application, Business, Contact, ExpectedDocument, Lender, LenderProduct, OutboxMessage
from services import intake
from tests.api_case import ApiTestCase, step_payload


class TestIntake(ApiTestCase):
    async def _count(self, model) -> int:
        async with self.session_factory() as session:
            return (await session.execute(select(func.count()).select_from(model))).scalar_one()

    async def test_acme_end_to_end(self):
        """Valid step payload -> 200 envelope, business echoed, bank statements for 6 months expected."""
        response = await self.submit(step_payload())
        self.assertEqual(response.status_code, 200, response.text)
        body = response.json()
        self.assertTrue(body["success"])
        self.assertEqual(body["business"]["businessName"], "Acme Co")
        self.assertEqual(body["externalId"], f"app_prod_{body['applicationId']}")
        self.assertEqual(body["status"], "draft")
        self.assertIn("timestamp", body)

        expected = await self.client.get(f"/api/applications/{body['applicationId']}/expected-documents")
        rows = {row["documentType"]: row for row in expected.json()}
        self.assertEqual(rows["bank_statements"]["months"], 6)
        self.assertTrue(rows["bank_statements"]["required"])

    async def test_missing_steps_rejected(self):
        """No step3 and no usable formData -> 400, nothing persisted."""
        payload = step_payload()
        del payload["step3"]
        payload["formData"] = {"notes": "x"}
        response = await self.submit(payload)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["received"]["step3"], False)
        self.assertEqual(await self._count(Application), 0)

    async def test_form_data_wrapped_accepted(self):
        response = await self.submit({"formData": step_payload()})
        self.assertEqual(response.status_code, 200, response.text)

    async def test_legacy_fields_rejected(self):
        """Flat legacy body -> 400 with rejectedFields listing exactly the legacy keys."""
        response = await self.submit({"businessName": "Acme Co", "applicantSSN": "123", "fundingAmount": 5000})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["rejectedFields"], ["businessName", "applicantSSN"])
        self.assertEqual(await self._count(Business), 0)

    async def test_required_field_error(self):
        response = await self.submit(step_payload(amount="zero"))
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["field"], "requestedAmount")

    async def test_test_submission_ignored(self):
        """Internal test business -> 202 ignored, nothing persisted."""
        response = await self.submit(step_payload(business_name="Lender Match Test Inc"))
        self.assertEqual(response.status_code, 202)
        self.assertTrue(response.json()["ignored"])
        self.assertEqual(await self._count(Application), 0)

    async def test_invalid_json(self):
        response = await self.client.post(
            "/api/applications", content=b"{not json", headers={"content-type": "application/json"}
        )
        self.assertEqual(response.status_code, 400)

    async def test_same_email_different_businesses(self):
        """Contact email is not unique: two businesses, two applications."""
        first = await self.create_application(business_name="Acme Co")
        second = await self.create_application(business_name="Birch Bakery")
        self.assertNotEqual(first["business"]["id"], second["business"]["id"])
        self.assertNotEqual(first["applicationId"], second["applicationId"])
        self.assertEqual(await self._count(Business), 2)

    async def test_same_payload_twice_reuses_business(self):
        """Same business name -> same business id, new application id."""
        first = await self.create_application()
        second = await self.create_application()
        self.assertEqual(first["business"]["id"], second["business"]["id"])
        self.assertNotEqual(first["applicationId"], second["applicationId"])
        self.assertEqual(await self._count(Business), 1)

    async def test_business_name_trimmed(self):
        first = await self.create_application(business_name="  Acme Co ")
        second = await self.create_application(business_name="Acme Co")
        self.assertEqual(first["business"]["businessName"], "Acme Co")
        self.assertEqual(first["business"]["id"], second["business"]["id"])

    async def test_client_application_id(self):
        """Non-UUID ids are replaced; a valid UUID is used verbatim."""
        body = (await self.submit(step_payload(applicationId="not-a-uuid"))).json()
        self.assertNotEqual(body["applicationId"], "not-a-uuid")
        uuid.UUID(body["applicationId"])

        client_id = str(uuid.uuid4())
        body = (await self.submit(step_payload(applicationId=client_id))).json()
        self.assertEqual(body["applicationId"], client_id)

    async def test_duplicate_application_id_is_idempotent(self):
        """Retrying with the same id returns the existing application without new checklist rows."""
        client_id = str(uuid.uuid4())
        first = await self.submit(step_payload(applicationId=client_id))
        second = await self.submit(step_payload(applicationId=client_id))
        self.assertEqual(second.status_code, 200, second.text)
        self.assertEqual(second.json()["applicationId"], client_id)
        self.assertEqual(first.json()["business"]["id"], second.json()["business"]["id"])
        self.assertEqual(await self._count(Application), 1)
        self.assertEqual(await self._count(ExpectedDocument), 3)

    async def test_product_requirements_raised_to_baseline(self):
        """Product asks for 3 months of bank statements -> 6 persisted."""
        async with self.session_factory() as session:
            session.add(Lender(id="nl", name="Northern", slug="northern"))
            session.add(
                LenderProduct(
                    id="nl-wc",
                    lender_id="nl",
                    name="Working Capital",
                    category="working_capital",
                    doc_requirements=[{"key": "bank_statements", "months": 3}, "Void Cheque"],
                )
            )
            await session.commit()
        payload = step_payload()
        payload["step2"] = {"productCategory": "working_capital"}
        body = (await self.submit(payload)).json()
        rows = (await self.client.get(f"/api/applications/{body['applicationId']}/expected-documents")).json()
        by_type = {r["documentType"]: r for r in rows}
        self.assertEqual(set(by_type), {"bank_statements", "void_cheque"})
        self.assertEqual(by_type["bank_statements"]["months"], 6)

    async def test_bank_statement_label_collapses_to_one_row(self):
        """'Bank Statements (last 3 months)' becomes the single bank_statements row at 6 months."""
        async with self.session_factory() as session:
            session.add(Lender(id="nl", name="Northern", slug="northern"))
            session.add(
                LenderProduct(
                    id="nl-wc",
                    lender_id="nl",
                    name="Working Capital",
                    category="working_capital",
                    doc_requirements=["Bank Statements (last 3 months)", "Void Cheque"],
                )
            )
            await session.commit()
        payload = step_payload()
        payload["step2"] = {"productCategory": "working_capital"}
        body = (await self.submit(payload)).json()
        rows = (await self.client.get(f"/api/applications/{body['applicationId']}/expected-documents")).json()
        self.assertEqual(len(rows), 2)
        self.assertEqual({r["documentType"]: r["months"] for r in rows}, {"bank_statements": 6, "void_cheque": None})

    async def test_retry_with_other_business_name_writes_nothing(self):
        """A same-id retry naming a different business reuses the original and creates no business."""
        client_id = str(uuid.uuid4())
        first = (await self.submit(step_payload(applicationId=client_id))).json()
        second = await self.submit(step_payload(business_name="Other Name Co", applicationId=client_id))
        self.assertEqual(second.status_code, 200, second.text)
        self.assertEqual(second.json()["business"], first["business"])
        async with self.session_factory() as session:
            names = (await session.execute(select(Business.business_name))).scalars().all()
        self.assertEqual(names, ["Acme Co"])
        self.assertEqual(await self._count(OutboxMessage), 2)

    async def test_concurrent_business_insert_reuses_winner(self):
        """When another writer inserts the same business first, the unique conflict yields its row."""
        winner = (await self.create_application())["business"]["id"]

        real_find = intake._find_business
        calls = []

        async def find_after_race(session, name):
            calls.append(name)
            if len(calls) == 1:
                return None
            return await real_find(session, name)

        with patch("services.intake._find_business", side_effect=find_after_race):
            response = await self.submit(step_payload(email="second@acme.example"))
        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(response.json()["business"]["id"], winner)
        self.assertEqual(len(calls), 2)
        self.assertEqual(await self._count(Business), 1)
        self.assertEqual(await self._count(Application), 2)

    async def test_upper_case_client_id_stored_lower(self):
        client_id = str(uuid.uuid4())
        body = (await self.submit(step_payload(applicationId=client_id.upper()))).json()
        self.assertEqual(body["applicationId"], client_id)
        response = await self.client.patch(f"/api/applications/{client_id.upper()}", json={})
        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(response.json()["application"]["id"], client_id)

    async def test_form_data_keeps_submission(self):
        payload = step_payload(source="client-portal")
        body = (await self.submit(payload)).json()
        detail = (await self.client.get(f"/api/applications/{body['applicationId']}")).json()
        self.assertEqual(detail["formData"]["submitted"], payload)
        self.assertEqual(detail["formData"]["step3"]["businessName"], "Acme Co")
        self.assertEqual(detail["source"], "client-portal")
        self.assertEqual(detail["requestedAmount"], 50_000)
        self.assertEqual(detail["country"], "CA")

    async def test_persistence_error_envelope(self):
        """Unexpected persistence errors -> 500 envelope with the error type."""
        with patch("api.applications.persist_submission", AsyncMock(side_effect=RuntimeError("db down"))):
            response = await self.submit(step_payload())
        self.assertEqual(response.status_code, 500)
        body = response.json()
        self.assertFalse(body["success"])
        self.assertEqual(body["message"], "Application creation failed")
        self.assertEqual(body["details"], "db down")
        self.assertEqual(body["errorType"], "RuntimeError")
        self.assertEqual(await self._count(Application), 0)

    async def test_contacts_created_after_response(self):
        """Applicant and partner contacts are merged by the post-response delivery."""
        payload = step_payload()
        payload["step4"].update({"partnerFirstName": "Sam", "partnerLastName": "Lee", "partnerEmail": "sam@acme.example"})
        body = (await self.submit(payload)).json()
        async with self.session_factory() as session:
            contacts = (
                await session.execute(select(Contact).where(Contact.application_id == body["applicationId"]))
            ).scalars().all()
            statuses = (await session.execute(select(OutboxMessage.status))).scalars().all()
        self.assertEqual(sorted(c.role for c in contacts), ["Applicant", "Partner"])
        self.assertEqual(sorted(statuses), ["sent", "sent"])

    async def test_notifier_failure_does_not_change_response(self):
        """Delivery failures are recorded on the outbox row, the intake still succeeds."""
        failing = AsyncMock(side_effect=RuntimeError("crm offline"))
        with patch.dict("services.notifier.HANDLERS", {"crm.contacts": failing, "sms.missing_documents": failing}):
            response = await self.submit(step_payload())
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["success"])
        async with self.session_factory() as session:
            rows = (await session.execute(select(OutboxMessage))).scalars().all()
        self.assertEqual(len(rows), 2)
        for row in rows:
            self.assertEqual(row.status, "pending")
            self.assertEqual(row.attempts, 1)
            self.assertIn("crm offline", row.last_error)


class TestFinalize(ApiTestCase):
    async def test_finalize_draft(self):
        """Draft -> submitted, stage In Review, not ready while documents are missing."""
        app_id = (await self.create_application())["applicationId"]
        response = await self.client.patch(f"/api/applications/{app_id}", json={})
        self.assertEqual(response.status_code, 200, response.text)
        app = response.json()["application"]
        self.assertEqual(app["status"], "submitted")
        self.assertEqual(app["stage"], "In Review")
        self.assertIsNotNone(app["submittedAt"])
        self.assertFalse(app["isReadyForLenders"])

    async def test_test_prefix_stripped(self):
        app_id = (await self.create_application())["applicationId"]
        response = await self.client.patch(f"/api/applications/test-{app_id}", json={"status": "submitted"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["application"]["id"], app_id)

    async def test_invalid_and_unknown_ids(self):
        response = await self.client.patch("/api/applications/abc", json={})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "Invalid application ID format"})
        response = await self.client.patch(f"/api/applications/{uuid.uuid4()}", json={})
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json(), {"error": "Application not found"})

    async def test_not_finalizable(self):
        """Only draft and submitted applications can be finalized."""
        app_id = (await self.create_application())["applicationId"]
        await self.client.patch(f"/api/applications/{app_id}/status", json={"status": "in_review"})
        response = await self.client.patch(f"/api/applications/{app_id}", json={})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["currentStatus"], "in_review")

    async def test_form_data_appended(self):
        """Finalize edits are appended; the original submission is kept."""
        app_id = (await self.create_application())["applicationId"]
        await self.client.patch(f"/api/applications/{app_id}", json={"formData": {"step3": {"website": "acme.example"}}})
        detail = (await self.client.get(f"/api/applications/{app_id}")).json()
        self.assertEqual(len(detail["formData"]["updates"]), 1)
        self.assertEqual(detail["formData"]["updates"][0]["formData"]["step3"]["website"], "acme.example")
        self.assertEqual(detail["formData"]["submitted"]["step3"]["businessName"], "Acme Co")

    async def test_ready_when_documents_uploaded(self):
        app_id = (await self.create_application())["applicationId"]
        for doc_type in ("bank_statements", "tax_returns", "financial_statements"):
            await self.client.post(
                f"/api/applications/{app_id}/documents",
                json={"documentType": doc_type, "fileName": f"{doc_type}.pdf"},
            )
        response = await self.client.patch(f"/api/applications/{app_id}", json={})
        self.assertTrue(response.json()["application"]["isReadyForLenders"])
        detail = (await self.client.get(f"/api/applications/{app_id}")).json()
        self.assertTrue(detail["isReadyForLenders"])
        self.assertEqual(detail["documentsCount"], 3)


class TestStatusAndDocuments(ApiTestCase):
    async def test_status_override(self):
        """Backwards move needs override."""
        app_id = (await self.create_application())["applicationId"]
        response = await self.client.patch(f"/api/applications/{app_id}/status", json={"status": "in_review", "stage": "In Review"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["stage"], "In Review")
        response = await self.client.patch(f"/api/applications/{app_id}/status", json={"status": "draft"})
        self.assertEqual(response.status_code, 400)
        response = await self.client.patch(f"/api/applications/{app_id}/status", json={"status": "draft", "override": True})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "draft")

    async def test_status_validation(self):
        app_id = (await self.create_application())["applicationId"]
        self.assertEqual((await self.client.patch(f"/api/applications/{app_id}/status", json={"stage": "Nowhere"})).status_code, 400)
        self.assertEqual((await self.client.patch(f"/api/applications/{app_id}/status", json={})).status_code, 400)
        self.assertEqual((await self.client.patch("/api/applications/missing/status", json={"status": "in_review"})).status_code, 404)

    async def test_checklist_satisfied_by_type(self):
        """A non-rejected document of the same type satisfies the checklist row."""
        app_id = (await self.create_application())["applicationId"]
        doc = (
            await self.client.post(
                f"/api/applications/{app_id}/documents",
                json={"documentType": "bank_statements", "fileName": "march.pdf", "fileSize": 1024, "mimeType": "application/pdf"},
            )
        ).json()
        self.assertEqual(doc["status"], "pending")
        rows = {r["documentType"]: r for r in (await self.client.get(f"/api/applications/{app_id}/expected-documents")).json()}
        self.assertTrue(rows["bank_statements"]["satisfied"])
        self.assertFalse(rows["tax_returns"]["satisfied"])

        response = await self.client.patch(f"/api/applications/{app_id}/documents/{doc['id']}", json={"status": "rejected"})
        self.assertEqual(response.status_code, 200)
        self.assertIsNotNone(response.json()["verifiedAt"])
        rows = {r["documentType"]: r for r in (await self.client.get(f"/api/applications/{app_id}/expected-documents")).json()}
        self.assertFalse(rows["bank_statements"]["satisfied"])

    async def test_document_errors(self):
        app_id = (await self.create_application())["applicationId"]
        response = await self.client.post("/api/applications/missing/documents", json={"documentType": "other", "fileName": "a.pdf"})
        self.assertEqual(response.status_code, 404)
        response = await self.client.patch(f"/api/applications/{app_id}/documents/nope", json={"status": "accepted"})
        self.assertEqual(response.status_code, 404)
        response = await self.client.patch(f"/api/applications/{app_id}/documents/nope", json={"status": "lost"})
        self.assertEqual(response.status_code, 422)

    async def test_list_filters(self):
        first = (await self.create_application())["applicationId"]
        await self.create_application(business_name="Birch Bakery")
        await self.client.patch(f"/api/applications/{first}", json={})
        submitted = (await self.client.get("/api/applications", params={"status": "submitted"})).json()
        self.assertEqual([a["id"] for a in submitted], [first])
        self.assertEqual(len((await self.client.get("/api/applications")).json()), 2)


if __name__ == "__main__":
    unittest.main()
