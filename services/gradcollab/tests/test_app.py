import unittest

from fastapi.testclient import TestClient

from gradcollab.app import create_app
from gradcollab.auth import verify_password
from gradcollab.config import Settings, get_settings
from gradcollab.db import InMemoryDbClient
from gradcollab.dependencies import get_db_client, get_mailer
from gradcollab.errors import MailDispatchError
from gradcollab.mailer import InMemoryMailer

WEB_CLIENT_ORIGIN = "https://gradcollab.test"

GENE_STUDY = {
    "field": "Biology",
    "subject": "Gene study",
    "projectImpactSummary": "Impact",
    "expectedTasks": "Sequencing",
    "expectedSkills": "Lab work",
    "expectedTime": "6mo",
    "offer": "Co-authorship",
    "additionalInfo": "",
}


def task_request_body(research_field: str, help_from: str) -> dict:
    return {
        "researchField": research_field,
        "researchSubject": f"{research_field} subject",
        "projectImpactSummary": "Impact",
        "fieldRequestingHelpFrom": help_from,
        "expectedTasksAndSkills": "Modelling",
        "reward": "Co-authorship",
        "state": "open",
    }


class FailingMailer:
    def send(self, message):
        raise MailDispatchError()


class ApiTestCase(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.mailer = InMemoryMailer()
        self.settings = Settings(
            web_client_origin=WEB_CLIENT_ORIGIN, mail_from="team@gradcollab.test"
        )
        self.app = create_app()
        self.app.dependency_overrides[get_db_client] = lambda: self.db
        self.app.dependency_overrides[get_mailer] = lambda: self.mailer
        self.app.dependency_overrides[get_settings] = lambda: self.settings
        self.client = TestClient(self.app)

    def new_client(self) -> TestClient:
        return TestClient(self.app)

    def signup(self, client: TestClient, email: str, password: str = "secret123") -> dict:
        response = client.post("/signup", json={"email": email, "password": password})
        self.assertEqual(response.status_code, 200, response.text)
        return response.json()


class AuthApiTests(ApiTestCase):
    def test_signup_returns_public_projection_and_logs_in(self):
        user = self.signup(self.client, "Ada@Example.com")
        self.assertEqual(user["email"], "ada@example.com")
        self.assertNotIn("password", user)
        self.assertEqual(user["name"], "")
        self.assertEqual(user["shortBio"], "")

        me = self.client.get("/me")
        self.assertEqual(me.status_code, 200)
        self.assertEqual(me.json()["_id"], user["_id"])
        self.assertNotIn("password", me.json())

        stored = self.db.get_user(user["_id"])
        self.assertNotEqual(stored.password, "secret123")

    def test_signup_rejects_normalized_duplicate(self):
        self.signup(self.client, "foo.bar@gmail.com")
        response = self.new_client().post(
            "/signup",
            json={"email": "Foo.Bar+grad@googlemail.com", "password": "another1"},
        )
        self.assertEqual(response.status_code, 403)
        self.assertEqual(
            response.json(),
            {
                "entire": [],
                "fields": {"email": "Account with that email address already exists."},
            },
        )
        self.assertEqual(len(self.db.users), 1)

    def test_signup_validation_errors(self):
        response = self.client.post(
            "/signup", json={"email": "not-an-email", "password": "123"}
        )
        self.assertEqual(response.status_code, 403)
        body = response.json()
        self.assertEqual(set(body), {"email", "password"})
        self.assertEqual(body["email"]["msg"], "Email is not valid")
        self.assertEqual(body["password"]["param"], "password")
        self.assertEqual(len(self.db.users), 0)

        overlong = self.client.post(
            "/signup", json={"email": "ada@example.com", "password": "x" * 73}
        )
        self.assertEqual(overlong.status_code, 403)
        self.assertEqual(set(overlong.json()), {"password"})
        self.assertEqual(len(self.db.users), 0)

    def test_login_and_logout(self):
        self.signup(self.client, "ada@example.com")
        self.client.post("/logout")
        self.assertEqual(self.client.get("/me").status_code, 401)

        bad = self.client.post(
            "/login", json={"email": "ada@example.com", "password": "wrong-pass"}
        )
        self.assertEqual(bad.status_code, 403)
        self.assertEqual(bad.json()["fields"], {})

        unknown = self.client.post(
            "/login", json={"email": "nobody@example.com", "password": "secret123"}
        )
        self.assertEqual(unknown.status_code, 403)

        good = self.client.post(
            "/login", json={"email": "ADA@example.com", "password": "secret123"}
        )
        self.assertEqual(good.status_code, 200)
        self.assertEqual(good.json()["email"], "ada@example.com")
        self.assertNotIn("password", good.json())
        self.assertEqual(self.client.get("/me").status_code, 200)

        logout = self.client.post("/logout")
        self.assertEqual(logout.status_code, 200)
        self.assertEqual(logout.json(), {})
        self.assertEqual(self.client.get("/me").status_code, 401)

    def test_login_requires_password(self):
        response = self.client.post(
            "/login", json={"email": "ada@example.com", "password": ""}
        )
        self.assertEqual(response.status_code, 403)
        self.assertIn("password", response.json())

    def test_me_requires_session(self):
        response = self.client.get("/me")
        self.assertEqual(response.status_code, 401)


class ProfileApiTests(ApiTestCase):
    def test_update_own_profile(self):
        user = self.signup(self.client, "ada@example.com")
        response = self.client.patch(
            f"/users/{user['_id']}",
            json={"name": "Ada", "university": "Cambridge", "linkedInUrl": ""},
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"ok": 1})

        me = self.client.get("/me").json()
        self.assertEqual(me["name"], "Ada")
        self.assertEqual(me["university"], "Cambridge")
        self.assertEqual(me["field"], "")

        public = self.new_client().get(f"/users/{user['_id']}")
        self.assertEqual(public.status_code, 200)
        self.assertEqual(public.json()["name"], "Ada")
        self.assertNotIn("password", public.json())

    def test_identical_update_is_reported_as_failure(self):
        user = self.signup(self.client, "ada@example.com")
        path = f"/users/{user['_id']}"
        self.assertEqual(self.client.patch(path, json={"name": "Ada"}).status_code, 200)

        repeat = self.client.patch(path, json={"name": "Ada"})
        self.assertEqual(repeat.status_code, 500)
        self.assertEqual(repeat.json(), {"err": "Failed to update"})

    def test_update_other_user_is_forbidden(self):
        other = self.signup(self.new_client(), "other@example.com")
        self.signup(self.client, "ada@example.com")
        response = self.client.patch(f"/users/{other['_id']}", json={"name": "Mallory"})
        self.assertEqual(response.status_code, 403)
        self.assertEqual(self.db.get_user(other["_id"]).name, "")

    def test_update_requires_session(self):
        user = self.signup(self.new_client(), "ada@example.com")
        response = self.client.patch(f"/users/{user['_id']}", json={"name": "Ada"})
        self.assertEqual(response.status_code, 401)

    def test_update_rejects_non_string_fields(self):
        user = self.signup(self.client, "ada@example.com")
        response = self.client.patch(
            f"/users/{user['_id']}", json={"name": 5, "shortBio": None}
        )
        self.assertEqual(response.status_code, 403)
        self.assertEqual(set(response.json()), {"name", "shortBio"})

    def test_update_rejects_unknown_keys(self):
        user = self.signup(self.client, "ada@example.com")
        path = f"/users/{user['_id']}"
        for body in ({"password": "hijack"}, {"email": "x"}):
            with self.subTest(body=body):
                response = self.client.patch(path, json=body)
                self.assertEqual(response.status_code, 403)
                self.assertEqual(set(response.json()), set(body))

        mixed = self.client.patch(path, json={"name": "Ada", "nickname": "x"})
        self.assertEqual(mixed.status_code, 403)
        self.assertIn("nickname", mixed.json())
        stored = self.db.get_user(user["_id"])
        self.assertEqual(stored.name, "")
        self.assertEqual(stored.email, "ada@example.com")
        self.assertTrue(verify_password("secret123", stored.password))

    def test_unknown_user_is_not_found(self):
        self.assertEqual(self.client.get("/users/missing").status_code, 404)


class TaskRequestApiTests(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.user = self.signup(self.client, "ada@example.com")

    def create(self, client: TestClient, body: dict) -> str:
        response = client.post("/task-requests", json=body)
        self.assertEqual(response.status_code, 200, response.text)
        return response.json()["taskRequestId"]

    def test_create_requires_session(self):
        response = self.new_client().post(
            "/task-requests", json=task_request_body("Biology", "Chemistry")
        )
        self.assertEqual(response.status_code, 401)

    def test_create_rejects_blank_fields(self):
        response = self.client.post(
            "/task-requests", json={"researchField": "Biology", "reward": "  "}
        )
        self.assertEqual(response.status_code, 403)
        self.assertEqual(
            set(response.json()),
            {
                "researchSubject",
                "projectImpactSummary",
                "fieldRequestingHelpFrom",
                "expectedTasksAndSkills",
                "reward",
            },
        )
        self.assertEqual(self.db.task_requests, {})

    def test_get_by_id_with_and_without_user(self):
        task_id = self.create(self.client, task_request_body("Biology", "Chemistry"))
        anonymous = self.new_client()

        plain = anonymous.get(f"/task-requests/{task_id}")
        self.assertEqual(plain.status_code, 200)
        self.assertEqual(plain.json()["_id"], task_id)
        self.assertEqual(plain.json()["userId"], self.user["_id"])
        self.assertEqual(plain.json()["state"], "open")

        joined = anonymous.get(f"/task-requests/{task_id}", params={"withUser": "1"})
        self.assertEqual(joined.status_code, 200)
        body = joined.json()
        self.assertEqual(body["taskRequest"]["_id"], task_id)
        self.assertEqual(body["user"]["_id"], self.user["_id"])
        self.assertNotIn("password", body["user"])

    def test_get_by_id_with_missing_owner_fails(self):
        task_id = self.create(self.client, task_request_body("Biology", "Chemistry"))
        del self.db.users[self.user["_id"]]
        response = self.new_client().get(
            f"/task-requests/{task_id}", params={"withUser": "true"}
        )
        self.assertEqual(response.status_code, 404)

    def test_unknown_task_request_is_not_found(self):
        self.assertEqual(self.client.get("/task-requests/missing").status_code, 404)

    def test_list_filters_are_conjunctive(self):
        match = self.create(self.client, task_request_body("Biology", "Chemistry"))
        self.create(self.client, task_request_body("Biology", "Physics"))
        self.create(self.client, task_request_body("Mathematics", "Chemistry"))

        other = self.new_client()
        other_user = self.signup(other, "other@example.com")
        self.create(other, task_request_body("Biology", "Physics"))

        both = self.client.get(
            "/task-requests",
            params={"researchField": "Biology", "fieldRequestingHelpFrom": "Chemistry"},
        )
        self.assertEqual([item["_id"] for item in both.json()], [match])

        everything = self.client.get("/task-requests")
        self.assertEqual(len(everything.json()), 4)

        mine = self.client.get(
            "/task-requests",
            params={"forUserId": self.user["_id"], "researchField": "Biology"},
        )
        self.assertEqual(len(mine.json()), 2)

        theirs = self.client.get("/task-requests", params={"forUserId": other_user["_id"]})
        self.assertEqual(len(theirs.json()), 1)


class CollabRequestApiTests(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.user = self.signup(self.client, "ada@example.com")
        response = self.client.post("/collab-requests", json=GENE_STUDY)
        self.assertEqual(response.status_code, 200, response.text)
        self.collab_id = response.json()["collabRequestId"]

    def invite(self, client: TestClient, email: str):
        return client.post(
            f"/collab-requests/{self.collab_id}/invites",
            json={"invitedCollabEmail": email},
        )

    def test_created_request_has_no_invites(self):
        response = self.new_client().get(f"/collab-requests/{self.collab_id}")
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["invitedCollabs"], [])
        self.assertEqual(body["subject"], "Gene study")
        self.assertEqual(body["userId"], self.user["_id"])

    def test_create_rejects_blank_fields(self):
        response = self.client.post(
            "/collab-requests", json=dict(GENE_STUDY, offer="", expectedTime="")
        )
        self.assertEqual(response.status_code, 403)
        self.assertEqual(set(response.json()), {"offer", "expectedTime"})

    def test_create_requires_session(self):
        response = self.new_client().post("/collab-requests", json=GENE_STUDY)
        self.assertEqual(response.status_code, 401)

    def test_list_returns_only_own_requests(self):
        other = self.new_client()
        self.signup(other, "other@example.com")
        other.post("/collab-requests", json=dict(GENE_STUDY, subject="Other study"))

        mine = self.client.get("/collab-requests")
        self.assertEqual(mine.status_code, 200)
        self.assertEqual([item["_id"] for item in mine.json()], [self.collab_id])

        self.assertEqual(self.new_client().get("/collab-requests").status_code, 401)

    def test_unknown_collab_request_is_not_found(self):
        self.assertEqual(self.client.get("/collab-requests/missing").status_code, 404)

    def test_invite_sends_one_email_and_rejects_repeat(self):
        first = self.invite(self.client, "a@example.com")
        self.assertEqual(first.status_code, 200)
        self.assertEqual(first.json(), {"ok": 1})
        self.assertEqual(len(self.mailer.sent), 1)

        message = self.mailer.sent[0]
        self.assertEqual(message.to, "a@example.com")
        self.assertEqual(message.from_, "team@gradcollab.test")
        self.assertIn("Gene study", message.subject)
        self.assertIn(
            f"{WEB_CLIENT_ORIGIN}/grad-collab/#/browse/{self.collab_id}", message.text
        )
        self.assertNotIn("Additional info", message.text)
        self.assertNotIn("Additional info", message.html)

        second = self.invite(self.client, "A@Example.com")
        self.assertEqual(second.status_code, 500)
        self.assertEqual(second.json(), {"err": 1})
        self.assertEqual(len(self.mailer.sent), 1)

        stored = self.client.get(f"/collab-requests/{self.collab_id}").json()
        self.assertEqual(stored["invitedCollabs"], ["a@example.com"])

    def test_invite_keeps_order(self):
        for email in ("b@example.com", "a@example.com", "c@example.com"):
            self.assertEqual(self.invite(self.client, email).status_code, 200)
        stored = self.client.get(f"/collab-requests/{self.collab_id}").json()
        self.assertEqual(
            stored["invitedCollabs"], ["b@example.com", "a@example.com", "c@example.com"]
        )

    def test_invite_rejects_invalid_email(self):
        response = self.invite(self.client, "not an email")
        self.assertEqual(response.status_code, 403)
        self.assertIn("invitedCollabEmail", response.json())
        self.assertEqual(self.mailer.sent, [])

    def test_invite_on_someone_elses_request_fails(self):
        other = self.new_client()
        self.signup(other, "other@example.com")
        response = self.invite(other, "a@example.com")
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"err": 1})
        self.assertEqual(self.db.get_collab_request(self.collab_id).invited_collabs, [])

    def test_invite_requires_session(self):
        response = self.invite(self.new_client(), "a@example.com")
        self.assertEqual(response.status_code, 401)

    def test_failed_dispatch_keeps_invite(self):
        self.app.dependency_overrides[get_mailer] = lambda: FailingMailer()
        response = self.invite(self.client, "a@example.com")
        self.assertEqual(response.status_code, 500)
        self.assertEqual(
            self.db.get_collab_request(self.collab_id).invited_collabs,
            ["a@example.com"],
        )


if __name__ == "__main__":
    unittest.main()
