import unittest
from typing import Annotated, List, Optional
from unittest.mock import MagicMock, patch

from bson import ObjectId
from pydantic import Field
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from docmapper import Document, Entity, HydratingCursor, Repository
from docmapper.config import settings
from docmapper.errors import MissingIdentityError
from docmapper.metadata import Id, Index, Nested, indexes


class Settings(Document):
    color_scheme: str = ""


class Article(Document):
    title: str = ""


@indexes([{"name": "name_age", "key": {"name": 1, "age": -1}}])
class User(Entity):
    name: Annotated[str, Index(1, unique=True)] = ""
    age: int = 0
    settings: Optional[Settings] = None
    articles: Annotated[List[Article], Nested()] = Field(default_factory=list)


class Person(Document):
    name: Annotated[str, Id()]
    age: int = 0


class Tag(Entity):
    label: str = ""


class UserRepository(Repository[User]):
    def __init__(self, db, **kwargs):
        super().__init__(db, "users", User, **kwargs)

    def find_all_by_name(self, name: str) -> List[User]:
        return self.find({"name": name}).to_list()


def make_db():
    db = MagicMock()
    collection = MagicMock()
    db.__getitem__.return_value = collection
    return db, collection


class TestRepositoryConstruction(unittest.TestCase):
    def test_binds_collection(self):
        db, collection = make_db()

        repo = UserRepository(db, auto_index=False)

        db.__getitem__.assert_called_once_with("users")
        self.assertIs(repo.collection, collection)
        self.assertEqual(repo.id_field, "id")

    def test_model_without_identity_is_rejected(self):
        class Anonymous(Document):
            name: str = ""

        db, _ = make_db()

        with self.assertRaises(MissingIdentityError):
            Repository(db, "anonymous", Anonymous)

    def test_auto_index_builds_in_background(self):
        db, collection = make_db()

        UserRepository(db, auto_index=True)

        models = collection.create_indexes.call_args[0][0]
        self.assertTrue(all(model.document["background"] for model in models))

    def test_auto_index_follows_settings(self):
        db, collection = make_db()

        with patch.object(settings, "AUTO_INDEX", True):
            UserRepository(db)

        collection.create_indexes.assert_called_once()

    def test_no_indexes_without_auto_index(self):
        db, collection = make_db()

        with patch.object(settings, "AUTO_INDEX", False):
            UserRepository(db)

        collection.create_indexes.assert_not_called()


class TestRepositoryWrites(unittest.TestCase):
    def setUp(self):
        self.db, self.collection = make_db()
        self.repo = UserRepository(self.db, auto_index=False)

    def test_insert_assigns_identity(self):
        oid = ObjectId()
        self.collection.insert_one.return_value = MagicMock(inserted_id=oid)
        user = User(name="tom", age=15)

        self.repo.insert(user)

        self.assertEqual(user.id, oid)
        plain = self.collection.insert_one.call_args[0][0]
        self.assertNotIn("_id", plain)
        self.assertNotIn("id", plain)
        self.assertEqual(plain["name"], "tom")
        self.assertEqual(plain["age"], 15)

    def test_insert_keeps_caller_identity(self):
        oid = ObjectId()
        self.collection.insert_one.return_value = MagicMock(inserted_id=oid)
        user = User(id=oid, name="tom")

        self.repo.insert(user)

        self.assertEqual(self.collection.insert_one.call_args[0][0]["_id"], oid)

    def test_insert_dehydrates_nested(self):
        self.collection.insert_one.return_value = MagicMock(inserted_id=ObjectId())
        user = User(
            name="tom",
            settings=Settings(color_scheme="BLACK_AND_YELLOW"),
            articles=[Article(title="How to be a better programmer")],
        )

        self.repo.insert(user)

        plain = self.collection.insert_one.call_args[0][0]
        self.assertEqual(plain["settings"], {"color_scheme": "BLACK_AND_YELLOW"})
        self.assertEqual(plain["articles"], [{"title": "How to be a better programmer"}])

    def test_duplicate_key_error_is_surfaced_unchanged(self):
        error = DuplicateKeyError("E11000 duplicate key error collection: users index: name")
        self.collection.insert_one.side_effect = error

        with self.assertRaises(DuplicateKeyError) as ctx:
            self.repo.insert(User(name="tom"))

        self.assertIs(ctx.exception, error)

    def test_update_replaces_by_identity(self):
        oid = ObjectId()
        user = User(id=oid, name="tom", age=22)

        self.repo.update(user, upsert=True)

        self.collection.replace_one.assert_called_once_with(
            {"_id": oid},
            {"_id": oid, "name": "tom", "age": 22, "settings": None, "articles": []},
            upsert=True,
        )

    def test_save_inserts_then_updates(self):
        oid = ObjectId()
        self.collection.insert_one.return_value = MagicMock(inserted_id=oid)
        user = User(name="tom", age=15)

        self.repo.save(user)

        self.assertEqual(user.id, oid)
        self.collection.insert_one.assert_called_once()
        self.collection.replace_one.assert_not_called()

        user.age = 16
        self.repo.save(user)

        self.assertEqual(user.id, oid)
        self.collection.insert_one.assert_called_once()
        filter_, plain = self.collection.replace_one.call_args[0]
        self.assertEqual(filter_, {"_id": oid})
        self.assertEqual(plain["age"], 16)

    def test_remove_deletes_by_identity(self):
        oid = ObjectId()

        self.repo.remove(User(id=oid))

        self.collection.delete_one.assert_called_once_with({"_id": oid})


class TestRepositoryReads(unittest.TestCase):
    def setUp(self):
        self.db, self.collection = make_db()
        self.repo = UserRepository(self.db, auto_index=False)

    def test_find_by_id(self):
        oid = ObjectId()
        self.collection.find_one.return_value = {"_id": oid, "name": "tom", "age": 15}

        saved = self.repo.find_by_id(oid)

        self.collection.find_one.assert_called_once_with({"_id": oid})
        self.assertIsInstance(saved, User)
        self.assertEqual(saved.name, "tom")
        self.assertEqual(saved.age, 15)
        self.assertEqual(saved.id, oid)

    def test_find_by_id_accepts_hex_string(self):
        oid = ObjectId()
        self.collection.find_one.return_value = None

        self.repo.find_by_id(str(oid))

        self.collection.find_one.assert_called_once_with({"_id": oid})

    def test_find_one_not_found(self):
        self.collection.find_one.return_value = None

        self.assertIsNone(self.repo.find_one({"name": "nobody"}))

    def test_find_one_without_filter(self):
        self.collection.find_one.return_value = None

        self.repo.find_one()

        self.collection.find_one.assert_called_once_with({})

    def test_find_is_lazy(self):
        consumed = []

        def documents():
            for name in ("tom", "tim"):
                consumed.append(name)
                yield {"_id": ObjectId(), "name": name}

        self.collection.find.return_value = documents()

        cursor = self.repo.find({"age": 15})

        self.assertIsInstance(cursor, HydratingCursor)
        self.assertEqual(consumed, [])
        first = next(cursor)
        self.assertEqual(first.name, "tom")
        self.assertEqual(consumed, ["tom"])
        self.assertEqual([user.name for user in cursor], ["tim"])

    def test_find_returns_a_new_cursor_per_call(self):
        self.collection.find.side_effect = lambda *args, **kwargs: iter([{"name": "tom"}])

        first = self.repo.find().to_list()
        second = self.repo.find().to_list()

        self.assertEqual(len(first), 1)
        self.assertEqual(len(second), 1)
        self.assertEqual(self.collection.find.call_count, 2)

    def test_custom_repository_method(self):
        self.collection.find.return_value = iter([{"name": "tom", "age": 15}, {"name": "tom", "age": 22}])

        users = self.repo.find_all_by_name("tom")

        self.collection.find.assert_called_once_with({"name": "tom"})
        self.assertEqual(len(users), 2)
        self.assertTrue(all(user.name == "tom" for user in users))

    def test_to_list_length(self):
        self.collection.find.side_effect = lambda *args, **kwargs: iter(
            [{"name": "tom"}, {"name": "tim"}, {"name": "tam"}]
        )

        self.assertEqual(self.repo.find().to_list(0), [])
        self.assertEqual([user.name for user in self.repo.find().to_list(2)], ["tom", "tim"])
        self.assertEqual(len(self.repo.find().to_list(10)), 3)

    def test_to_list_zero_consumes_nothing(self):
        consumed = []

        def documents():
            for name in ("tom", "tim"):
                consumed.append(name)
                yield {"name": name}

        self.collection.find.return_value = documents()

        self.repo.find().to_list(0)

        self.assertEqual(consumed, [])

    def test_find_empty(self):
        self.collection.find.return_value = iter([])

        self.assertEqual(self.repo.find({"name": "nobody"}).to_list(), [])

    def test_find_many_by_id(self):
        ids = [ObjectId(), ObjectId()]
        self.collection.find.return_value = iter([{"_id": ids[1]}, {"_id": ids[0]}])

        users = self.repo.find_many_by_id(ids)

        self.collection.find.assert_called_once_with({"_id": {"$in": ids}})
        self.assertEqual({user.id for user in users}, set(ids))

    def test_find_one_and_update(self):
        oid = ObjectId()
        self.collection.find_one_and_update.return_value = {"_id": oid, "name": "tom", "age": 16}

        user = self.repo.find_one_and_update(
            {"name": "tom"}, {"$inc": {"age": 1}}, return_document=ReturnDocument.AFTER
        )

        self.collection.find_one_and_update.assert_called_once_with(
            {"name": "tom"}, {"$inc": {"age": 1}}, return_document=ReturnDocument.AFTER
        )
        self.assertEqual(user.age, 16)

    def test_find_one_and_update_not_found(self):
        self.collection.find_one_and_update.return_value = None

        self.assertIsNone(self.repo.find_one_and_update({"name": "x"}, {"$set": {"age": 1}}))

    def test_find_one_and_delete(self):
        oid = ObjectId()
        self.collection.find_one_and_delete.return_value = {"_id": oid, "name": "tom"}

        user = self.repo.find_one_and_delete({"name": "tom"})

        self.collection.find_one_and_delete.assert_called_once_with({"name": "tom"})
        self.assertEqual(user.id, oid)

    def test_find_one_and_delete_not_found(self):
        self.collection.find_one_and_delete.return_value = None

        self.assertIsNone(self.repo.find_one_and_delete())

    def test_count(self):
        self.collection.count_documents.return_value = 3

        self.assertEqual(self.repo.count({"name": "tom"}), 3)
        self.collection.count_documents.assert_called_once_with({"name": "tom"})

    def test_count_whole_collection(self):
        self.collection.count_documents.return_value = 7

        self.assertEqual(self.repo.count(), 7)
        self.collection.count_documents.assert_called_once_with({})

    def test_estimated_count(self):
        self.collection.estimated_document_count.return_value = 9

        self.assertEqual(self.repo.count(estimate=True), 9)
        self.collection.count_documents.assert_not_called()

    def test_storage_errors_propagate(self):
        from pymongo.errors import ServerSelectionTimeoutError

        self.collection.find_one.side_effect = ServerSelectionTimeoutError("no servers")

        with self.assertRaises(ServerSelectionTimeoutError):
            self.repo.find_one()


class TestCustomIdentityRepository(unittest.TestCase):
    def setUp(self):
        self.db, self.collection = make_db()
        self.repo = Repository(self.db, "people", Person, auto_index=False)

    def test_insert_stores_identity_under_storage_key(self):
        self.collection.insert_one.return_value = MagicMock(inserted_id="Tom")

        self.repo.insert(Person(name="Tom", age=15))

        self.collection.insert_one.assert_called_once_with({"_id": "Tom", "age": 15})

    def test_find_by_program_identity_name(self):
        self.collection.find.return_value = iter([{"_id": "Tom", "age": 15}])

        people = self.repo.find({"name": "Tom"}).to_list()

        self.collection.find.assert_called_once_with({"_id": "Tom"})
        self.assertEqual(people[0].name, "Tom")
        self.assertEqual(people[0].age, 15)

    def test_find_by_id_does_not_coerce(self):
        self.collection.find_one.return_value = None

        self.repo.find_by_id("Tom")

        self.collection.find_one.assert_called_once_with({"_id": "Tom"})

    def test_count_translates_filter(self):
        self.collection.count_documents.return_value = 1

        self.repo.count({"$or": [{"name": "Tom"}, {"age": 15}]})

        self.collection.count_documents.assert_called_once_with({"$or": [{"_id": "Tom"}, {"age": 15}]})


class TestCreateIndexes(unittest.TestCase):
    def test_returns_none_without_declared_indexes(self):
        db, collection = make_db()
        repo = Repository(db, "tags", Tag, auto_index=False)

        self.assertIsNone(repo.create_indexes())
        collection.create_indexes.assert_not_called()

    def test_submits_declared_indexes(self):
        db, collection = make_db()
        collection.create_indexes.return_value = ["name", "name_age"]
        repo = UserRepository(db, auto_index=False)

        result = repo.create_indexes()

        self.assertEqual(result, ["name", "name_age"])
        models = collection.create_indexes.call_args[0][0]
        documents = [model.document for model in models]
        self.assertEqual([doc["name"] for doc in documents], ["name", "name_age"])
        self.assertEqual(dict(documents[0]["key"]), {"name": 1})
        self.assertTrue(documents[0]["unique"])
        self.assertEqual(dict(documents[1]["key"]), {"name": 1, "age": -1})
        self.assertNotIn("background", documents[0])

    def test_force_background_does_not_touch_declarations(self):
        db, collection = make_db()
        repo = UserRepository(db, auto_index=False)

        repo.create_indexes(force_background=True)
        repo.create_indexes()

        forced, plain = [call[0][0] for call in collection.create_indexes.call_args_list]
        self.assertTrue(all(model.document["background"] for model in forced))
        self.assertTrue(all("background" not in model.document for model in plain))


if __name__ == "__main__":
    unittest.main()
