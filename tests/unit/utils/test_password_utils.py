import string

import pytest

from provisioning_core.utils.password_utils import PasswordHasher, generate_temp_password


class TestGenerateTempPassword:
    @pytest.mark.parametrize("length", [8, 12, 32])
    def test_length_and_character_classes(self, length):
        password = generate_temp_password(length)

        assert len(password) == length
        assert any(c in string.ascii_lowercase for c in password)
        assert any(c in string.ascii_uppercase for c in password)
        assert any(c in string.digits for c in password)
        assert any(c in "!@#$%^&*" for c in password)

    def test_passwords_differ(self):
        assert len({generate_temp_password() for _ in range(20)}) == 20

    def test_too_short(self):
        with pytest.raises(ValueError):
            generate_temp_password(6)


class TestPasswordHasher:
    def setup_method(self):
        self.hasher = PasswordHasher(rounds=4)

    def test_hash_and_verify(self):
        password_hash = self.hasher.hash("Temp#Pass123")

        assert password_hash != "Temp#Pass123"
        assert password_hash.startswith("$2")
        assert self.hasher.verify("Temp#Pass123", password_hash)
        assert not self.hasher.verify("wrong-password", password_hash)

    def test_rounds(self):
        assert self.hasher.rounds == 4
        assert "$04$" in self.hasher.hash("Temp#Pass123")

    def test_empty_password_rejected(self):
        with pytest.raises(ValueError):
            self.hasher.hash("")

    @pytest.mark.parametrize(
        "password,password_hash",
        [("", "$2b$04$abc"), ("secret", ""), ("secret", "not-a-bcrypt-hash")],
    )
    def test_verify_invalid_inputs(self, password, password_hash):
        assert self.hasher.verify(password, password_hash) is False
