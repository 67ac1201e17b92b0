# encoding: utf-8
import unittest as test

import bagpack.validate.base as val
from bagit import BagValidationError

class TestValidationIssue(test.TestCase):

    def test_passed(self):
        issue = val.ValidationIssue("Checksums", "files must match")
        self.assertEqual(issue.label, "Checksums")
        self.assertEqual(issue.type, val.ERROR)
        self.assertTrue(issue.passed())
        self.assertFalse(issue.failed())
        self.assertEqual(issue.comments, ())
        self.assertEqual(issue.summary, "PASSED: Checksums: files must match")
        self.assertEqual(issue.description, issue.summary)
        self.assertEqual(str(issue), issue.summary)

    def test_failed(self):
        issue = val.ValidationIssue("Payload-Declared", "list every file",
                                    val.WARN, False,
                                    ["undeclared: data/a", "undeclared: data/b"])
        self.assertTrue(issue.failed())
        self.assertEqual(issue.summary,
                         "WARNING: Payload-Declared: list every file")
        self.assertEqual(issue.description,
                         "WARNING: Payload-Declared: list every file\n"
                         "   undeclared: data/a\n   undeclared: data/b")

    def test_bad_severity(self):
        with self.assertRaises(ValueError):
            val.ValidationIssue("Checksums", "files must match", 4)

class TestValidationResults(test.TestCase):

    def setUp(self):
        self.results = val.ValidationResults("samplebag")
        self.results.add("Payload-Complete", "present", val.ERROR, True)
        self.results.add("Payload-Declared", "listed", val.WARN, False,
                         "undeclared: data/x")
        self.results.add("Checksums", "match", val.ERROR, False,
                         ["mismatch 1", "mismatch 2"])

    def test_selection(self):
        self.assertEqual([i.label for i in self.results.applied()],
                         ["Payload-Complete", "Payload-Declared", "Checksums"])
        self.assertEqual([i.label for i in self.results.applied(val.WARN)],
                         ["Payload-Declared"])
        self.assertEqual([i.label for i in self.results.failed(val.ERROR)],
                         ["Checksums"])
        self.assertEqual(self.results.failed_labels(),
                         set(["Payload-Declared", "Checksums"]))
        self.assertEqual(self.results.failed_labels(val.WARN),
                         set(["Payload-Declared"]))
        self.assertEqual(self.results.failed(val.WARN)[0].comments,
                         ("undeclared: data/x",))

    def test_ok(self):
        self.assertFalse(self.results.ok())

        results = val.ValidationResults("samplebag", val.ERROR)
        results.add("Payload-Declared", "listed", val.WARN, False)
        self.assertTrue(results.ok())
        results.add("Checksums", "match", val.ERROR, False)
        self.assertFalse(results.ok())

    def test_error(self):
        err = val.BagPackValidationError(self.results)
        self.assertIsInstance(err, BagValidationError)
        self.assertIs(err.results, self.results)
        self.assertIn("samplebag", err.message)
        self.assertIn("2 test(s) failed", err.message)
        self.assertEqual(len(err.details), 2)
        self.assertIn("mismatch 2", err.details[1])


if __name__ == '__main__':
    test.main()
