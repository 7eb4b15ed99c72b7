import unittest

from sqlmodel import Session, select

from aura.core.init_db import init_db
from aura.models.Role import Role
from aura.models.User import User
from aura.users.service import password_problems

from support import PASSWORD, SECRETARY_CPF, SERVER_CPF, UNREGISTERED_CPF, add_user, bearer, login, running_app


class UsersApiTestCase(unittest.TestCase):

    def new_user(self, **overrides):
        data = {"name": "Paula Reis", "cpf": UNREGISTERED_CPF, "password": "Forte1234", "role": "server"}
        data.update(overrides)
        return data


class TestCreateUser(UsersApiTestCase):

    def test_secretary_creates_user(self):
        with running_app() as (app, client):
            add_user(app, SECRETARY_CPF, Role.SECRETARY)
            token = login(client, SECRETARY_CPF).json()["access_token"]

            response = client.post("/api/users", json=self.new_user(cpf="153.509.460-56"), headers=bearer(token))

            self.assertEqual(response.status_code, 201)
            self.assertEqual(response.json()["cpf"], UNREGISTERED_CPF)
            self.assertNotIn("password_hash", response.json())
            self.assertEqual(login(client, UNREGISTERED_CPF, "Forte1234").status_code, 200)

    def test_payload_is_sanitized(self):
        with running_app() as (app, client):
            add_user(app, SECRETARY_CPF, Role.SECRETARY)
            token = login(client, SECRETARY_CPF).json()["access_token"]

            response = client.post("/api/users", json=self.new_user(name=" <b>Paula</b> "), headers=bearer(token))

            self.assertEqual(response.json()["name"], "bPaula/b")

    def test_duplicate_cpf_conflicts(self):
        with running_app() as (app, client):
            add_user(app, SECRETARY_CPF, Role.SECRETARY)
            token = login(client, SECRETARY_CPF).json()["access_token"]

            client.post("/api/users", json=self.new_user(), headers=bearer(token))
            response = client.post("/api/users", json=self.new_user(), headers=bearer(token))

            self.assertEqual(response.status_code, 409)

    def test_invalid_cpf_and_weak_password(self):
        with running_app() as (app, client):
            add_user(app, SECRETARY_CPF, Role.SECRETARY)
            token = login(client, SECRETARY_CPF).json()["access_token"]

            for payload in (self.new_user(cpf="12345678900"), self.new_user(password="fraca")):
                with self.subTest(payload=payload):
                    response = client.post("/api/users", json=payload, headers=bearer(token))
                    self.assertEqual(response.status_code, 400)
                    self.assertEqual(response.json()["code"], "VALIDATION_ERROR")

    def test_only_secretary_may_create(self):
        with running_app() as (app, client):
            add_user(app, SERVER_CPF, Role.SERVER)
            token = login(client, SERVER_CPF).json()["access_token"]

            response = client.post("/api/users", json=self.new_user(), headers=bearer(token))

            self.assertEqual(response.status_code, 403)
            with Session(app.state.engine) as session:
                self.assertIsNone(session.exec(select(User).where(User.cpf == UNREGISTERED_CPF)).first())

    def test_password_rules(self):
        self.assertEqual(password_problems("Forte1234"), [])
        self.assertEqual(
            password_problems("abc"),
            ["at least 8 characters", "one uppercase letter", "one digit"],
        )


class TestListAndDeactivate(UsersApiTestCase):

    def test_coordinator_lists_users(self):
        with running_app() as (app, client):
            add_user(app, SECRETARY_CPF, Role.COORDINATOR)
            add_user(app, SERVER_CPF, Role.SERVER)
            token = login(client, SECRETARY_CPF).json()["access_token"]

            response = client.get("/api/users", headers=bearer(token))

            self.assertEqual(response.status_code, 200)
            self.assertEqual([u["cpf"] for u in response.json()], [SECRETARY_CPF, SERVER_CPF])

    def test_deactivate_ends_every_session(self):
        with running_app() as (app, client):
            add_user(app, SECRETARY_CPF, Role.SECRETARY)
            server_id = add_user(app, SERVER_CPF, Role.SERVER)
            admin_token = login(client, SECRETARY_CPF).json()["access_token"]
            server_tokens = login(client, SERVER_CPF).json()

            response = client.post(f"/api/users/{server_id}/deactivate", headers=bearer(admin_token))

            self.assertEqual(response.status_code, 200)
            self.assertFalse(response.json()["is_active"])
            refused = client.post("/api/auth/refresh", json={"refresh_token": server_tokens["refresh_token"]})
            self.assertEqual(refused.json()["code"], "TOKEN_REVOKED")
            self.assertEqual(login(client, SERVER_CPF, PASSWORD).json()["code"], "INVALID_CREDENTIALS")

    def test_deactivate_unknown_or_self(self):
        with running_app() as (app, client):
            admin_id = add_user(app, SECRETARY_CPF, Role.SECRETARY)
            token = login(client, SECRETARY_CPF).json()["access_token"]

            self.assertEqual(client.post("/api/users/999/deactivate", headers=bearer(token)).status_code, 404)
            self.assertEqual(client.post(f"/api/users/{admin_id}/deactivate", headers=bearer(token)).status_code, 400)


class TestInitialSecretary(unittest.TestCase):

    def test_secretary_is_seeded_once(self):
        settings = {"ADMIN_CPF": "529.982.247-25", "ADMIN_PASSWORD": "Inicial123", "ADMIN_NAME": "Secretaria"}
        with running_app(**settings) as (app, client):
            response = login(client, SECRETARY_CPF, "Inicial123")
            self.assertEqual(response.status_code, 200)
            self.assertEqual(response.json()["user"]["role"], "secretary")

            init_db(app.state.engine, app.state.settings)
            with Session(app.state.engine) as session:
                self.assertEqual(len(session.exec(select(User)).all()), 1)

    def test_invalid_admin_cpf_is_not_seeded(self):
        with running_app(ADMIN_CPF="11111111111", ADMIN_PASSWORD="Inicial123") as (app, client):
            with Session(app.state.engine) as session:
                self.assertEqual(session.exec(select(User)).all(), [])


if __name__ == "__main__":
    unittest.main()
