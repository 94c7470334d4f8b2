"""Tests for Atoms and the Atomizer."""

from datetime import datetime, timezone

import pytest

from portastore.atom import Atom, Atomizer
from portastore.errors import DecodeError
from portastore.testing import Address, Profile, Status, User


@pytest.fixture
def user():
    return User(
        id="u1",
        name="Ada",
        email="ada@example.com",
        age=36,
        active=True,
        status=Status.SUSPENDED,
        tags=["admin", "ops"],
        nickname="countess",
        created=datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc),
    )


@pytest.fixture
def profile():
    return Profile(
        user_id="u1",
        avatar=b"\x89PNG",
        scores=[0.5, 0.75],
        labels={"tier": "gold"},
        home=Address(street="1 Main", city="Springfield"),
        work=Address(street="2 Market", city="Shelbyville"),
        login_count=3,
        cache_key="c",
    )


class TestAtomize:
    """Tests for record -> Atom."""

    def test_partitions(self, user):
        atom = Atomizer(User).atomize(user)
        assert atom.strings["id"] == "u1"
        assert atom.strings["status"] == "suspended"
        assert atom.ints["age"] == 36
        assert atom.bools["active"] is True
        assert atom.string_lists["tags"] == ["admin", "ops"]
        assert atom.nullable_strings["nickname"] == "countess"
        assert atom.nullable_times["created"] == user.created

    def test_keys_are_declared_names(self, user, profile):
        atom = Atomizer(User).atomize(user)
        assert "email" in atom.strings
        assert "mail" not in atom.strings

        atom = Atomizer(Profile).atomize(profile)
        assert "user_id" in atom.strings
        assert "uid" not in atom.strings

    def test_field_membership_matches_type(self, user, profile):
        assert Atomizer(User).atomize(user).field_names() == set(Atomizer(User).spec.field_names)
        assert Atomizer(Profile).atomize(profile).field_names() == {
            "user_id", "avatar", "scores", "labels", "home", "work", "login_count", "cache_key",
        }

    def test_unset_optional_is_absent(self):
        atom = Atomizer(User).atomize(User(id="u2"))
        assert "nickname" not in atom.nullable_strings
        assert "created" not in atom.nullable_times
        assert "nickname" not in atom.field_names()

    def test_nested_records(self, profile):
        atom = Atomizer(Profile).atomize(profile)
        assert isinstance(atom.nested["home"], Atom)
        assert atom.nested["home"].strings["city"] == "Springfield"
        assert atom.nullable_nested["work"].strings["street"] == "2 Market"

    def test_atom_carries_type_name(self, user):
        assert Atomizer(User).atomize(user).type_name.endswith(".User")


class TestDeatomize:
    """Tests for Atom -> record."""

    def test_round_trip(self, user, profile):
        for record_type, value in ((User, user), (Profile, profile)):
            atomizer = Atomizer(record_type)
            assert atomizer.deatomize(atomizer.atomize(value)) == value

    def test_round_trip_with_unset_optionals(self):
        atomizer = Atomizer(Profile)
        value = Profile(user_id="u3")
        assert atomizer.deatomize(atomizer.atomize(value)) == value

    def test_mutation_through_atom(self, user):
        atomizer = Atomizer(User)
        atom = atomizer.atomize(user)
        atom.strings["name"] = "Augusta"
        atom.nullable_strings.pop("nickname")
        restored = atomizer.deatomize(atom)
        assert restored.name == "Augusta"
        assert restored.nickname is None

    def test_missing_required_field(self, user):
        atomizer = Atomizer(User)
        atom = atomizer.atomize(user)
        del atom.ints["age"]
        with pytest.raises(DecodeError, match="required field 'age'"):
            atomizer.deatomize(atom)

    def test_wrong_partition(self, user):
        atomizer = Atomizer(User)
        atom = atomizer.atomize(user)
        atom.strings["age"] = str(atom.ints.pop("age"))
        with pytest.raises(DecodeError, match="found in strings"):
            atomizer.deatomize(atom)

    def test_wrong_value_type(self, user):
        atomizer = Atomizer(User)
        atom = atomizer.atomize(user)
        atom.ints["age"] = "36"
        with pytest.raises(DecodeError):
            atomizer.deatomize(atom)

    def test_unknown_field(self, user):
        atomizer = Atomizer(User)
        atom = atomizer.atomize(user)
        atom.strings["surprise"] = "!"
        with pytest.raises(DecodeError, match="unknown fields surprise"):
            atomizer.deatomize(atom)

    def test_invalid_enum_value(self, user):
        atomizer = Atomizer(User)
        atom = atomizer.atomize(user)
        atom.strings["status"] = "deleted"
        with pytest.raises(DecodeError):
            atomizer.deatomize(atom)

    def test_from_spec_shares_spec(self):
        atomizer = Atomizer(User)
        assert Atomizer.from_spec(atomizer.spec).spec is atomizer.spec
