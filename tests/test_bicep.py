import tempfile
import unittest
from pathlib import Path

from radius_gitops.errors import ValidationError
from radius_gitops.model.bicep import find_model_files, load_model, parse_model

MODEL = """
extension radius

// Parameters
param environment string
param image string = 'ghcr.io/radius-project/samples/demo:latest'
param dbName string = 'orders'

resource app 'Radius.Core/applications@2025-08-01-preview' = {
  name: 'todoapp'
  properties: {
    environment: environment
  }
}

/* backing store */
resource db 'Radius.Data/postgreSqlDatabases@2025-08-01-preview' = {
  name: dbName
  properties: {
    application: app.id
    environment: environment
    size: 'S'
    replicas: 2
    highAvailability: false
  }
}

resource web 'Radius.Compute/containers@2025-08-01-preview' = {
  name: 'frontend'
  properties: {
    application: app.id
    container: {
      image: image
      ports: {
        web: {
          containerPort: 3000
        }
      }
    }
    connections: {
      postgres: {
        source: db.id
      }
    }
  }
  dependsOn: [db]
}
"""


class ParseModelTests(unittest.TestCase):
    def test_resources_in_declaration_order(self) -> None:
        graph = parse_model(MODEL)
        self.assertEqual(list(graph.resources), ["app", "db", "web"])
        self.assertEqual(graph.get("web").type, "Radius.Compute/containers@2025-08-01-preview")

    def test_parameters_and_literals(self) -> None:
        graph = parse_model(MODEL)

        self.assertIsNone(graph.parameters["environment"])
        self.assertEqual(graph.parameters["image"], "ghcr.io/radius-project/samples/demo:latest")
        db = graph.get("db").plain_properties()
        self.assertEqual(db["size"], "S")
        self.assertEqual(db["replicas"], 2)
        self.assertIs(db["highAvailability"], False)
        self.assertEqual(db["application"], "${app.id}")

    def test_name_resolved_from_parameter_default(self) -> None:
        graph = parse_model(MODEL)
        self.assertEqual(graph.get("db").name, "orders")
        self.assertEqual(graph.get("web").name, "frontend")

    def test_connections_and_depends_on_become_edges(self) -> None:
        graph = parse_model(MODEL)
        web = graph.get("web")

        self.assertEqual(web.connections["postgres"].target, "db")
        self.assertEqual(web.depends_on, ["db"])
        self.assertNotIn("connections", web.plain_properties())
        self.assertEqual(web.plain_properties()["container"]["ports"]["web"]["containerPort"], 3000)

        graph.resolve_connections()
        self.assertEqual([n.symbolic_name for n in graph.ordered_resources()], ["app", "db", "web"])

    def test_inline_recipe(self) -> None:
        text = """
resource cache 'Radius.Data/redisCaches@2025-08-01-preview' = {
  name: 'cache'
  properties: {
    recipe: {
      name: 'default'
      kind: 'terraform'
      source: 'git::https://example.com/recipes.git//redis?ref=v1'
    }
  }
}
"""
        node = parse_model(text).get("cache")
        self.assertIsNotNone(node.recipe)
        self.assertEqual(node.recipe.kind, "terraform")
        self.assertEqual(node.recipe.source, "git::https://example.com/recipes.git//redis?ref=v1")
        self.assertNotIn("recipe", node.plain_properties())

    def test_multiline_string_and_comment_in_string(self) -> None:
        text = """
resource cfg 'Radius.Core/configs@2025-08-01-preview' = {
  name: 'cfg'
  properties: {
    url: 'http://example.com//not-a-comment'
    script: '''
echo hello
'''
  }
}
"""
        props = parse_model(text).get("cfg").plain_properties()
        self.assertEqual(props["url"], "http://example.com//not-a-comment")
        self.assertEqual(props["script"], "\necho hello\n")

    def test_unterminated_object(self) -> None:
        text = "resource db 'Radius.Data/redisCaches@1' = {\n  name: 'db'\n"
        with self.assertRaises(ValidationError):
            parse_model(text)

    def test_duplicate_resource(self) -> None:
        text = (
            "resource db 'T/x@1' = {\n  name: 'a'\n}\n"
            "resource db 'T/x@1' = {\n  name: 'b'\n}\n"
        )
        with self.assertRaises(ValidationError):
            parse_model(text)


class ModelFileTests(unittest.TestCase):
    def test_load_and_find(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            model_dir = Path(tmp) / ".radius" / "model"
            model_dir.mkdir(parents=True)
            (model_dir / "todo.bicep").write_text(MODEL, encoding="utf-8")
            (model_dir / "notes.txt").write_text("ignored", encoding="utf-8")

            files = find_model_files(model_dir)
            self.assertEqual([f.name for f in files], ["todo.bicep"])

            graph = load_model(files[0])
            self.assertEqual(graph.file_path, files[0])
            self.assertEqual(len(graph), 3)

    def test_missing_dir_and_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            self.assertEqual(find_model_files(Path(tmp) / "nope"), [])
            with self.assertRaises(ValidationError):
                load_model(Path(tmp) / "missing.bicep")


if __name__ == "__main__":
    unittest.main()
