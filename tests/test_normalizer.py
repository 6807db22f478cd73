import json
import unittest

from bruno_catalog.errors import ErrorKind, InvalidSpecFormat
from bruno_catalog.normalizer import normalize

PETSTORE_JSON = json.dumps({
    "openapi": "3.0.0",
    "info": {"title": "Petstore", "version": "1.0.0"},
    "paths": {"/pets": {"get": {"summary": "List pets"}}},
})

PETSTORE_YAML = """\
openapi: "3.0.0"
info:
  title: Petstore
  version: "1.0.0"
paths:
  /pets:
    get:
      summary: List pets
"""


class TestNormalize(unittest.TestCase):
    def test_json_and_yaml_give_identical_canonical_output(self):
        from_json = normalize(PETSTORE_JSON.encode())
        from_yaml = normalize(PETSTORE_YAML.encode(), hint_extension="openapi.yaml")
        self.assertEqual(from_json.canonical_json, from_yaml.canonical_json)
        self.assertEqual(from_json.source_format, "json")
        self.assertEqual(from_yaml.source_format, "yaml")

    def test_yaml_without_hint_still_parses(self):
        parsed = normalize(PETSTORE_YAML)
        self.assertEqual(parsed.document["info"]["title"], "Petstore")
        self.assertEqual(parsed.spec_version, "3.0.0")

    def test_swagger_2_is_accepted(self):
        parsed = normalize(json.dumps({"swagger": "2.0", "info": {"title": "Old"}, "paths": {}}))
        self.assertEqual(parsed.spec_version, "2.0")
        self.assertTrue(parsed.is_swagger)

    def test_mapping_without_version_field_is_rejected(self):
        with self.assertRaises(InvalidSpecFormat) as ctx:
            normalize('{"foo": "bar"}')
        self.assertEqual(ctx.exception.kind, ErrorKind.INVALID_SPEC)

    def test_non_mapping_is_rejected(self):
        for raw in ("just some text", "[1, 2, 3]", "   ", b""):
            with self.assertRaises(InvalidSpecFormat):
                normalize(raw)

    def test_unparsable_input_is_rejected(self):
        with self.assertRaises(InvalidSpecFormat):
            normalize("openapi: [unclosed\n  - {", hint_extension="spec.yml")

    def test_yaml_with_non_string_keys_is_rejected(self):
        raw = "openapi: 3.0.0\ninfo:\n  title: Dated\npaths: {}\nx-changelog:\n  2021-01-01: first\n"
        with self.assertRaises(InvalidSpecFormat) as ctx:
            normalize(raw, hint_extension="openapi.yaml")
        self.assertEqual(ctx.exception.kind, ErrorKind.INVALID_SPEC)

    def test_self_referencing_anchor_is_rejected(self):
        raw = "openapi: 3.0.0\ninfo:\n  title: Loop\npaths: {}\nx-loop: &a [*a]\n"
        with self.assertRaises(InvalidSpecFormat):
            normalize(raw, hint_extension="openapi.yaml")

    def test_utf8_bom_is_stripped(self):
        parsed = normalize(b"\xef\xbb\xbf" + PETSTORE_JSON.encode())
        self.assertEqual(parsed.source_format, "json")

    def test_canonical_json_is_pretty_and_keeps_unicode(self):
        parsed = normalize(json.dumps({"openapi": "3.1.0", "info": {"title": "Café"}}))
        self.assertIn('\n  "info"', parsed.canonical_json)
        self.assertIn("Café", parsed.canonical_json)


if __name__ == "__main__":
    unittest.main()
