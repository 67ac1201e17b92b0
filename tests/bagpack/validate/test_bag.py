# encoding: utf-8
import os
import tempfile, shutil
import unittest as test
from io import BytesIO

import bagpack.validate.bag as bagv
import bagpack.validate.base as val
from bagpack.access.bagit import Bag
from bagpack.builder import BagBuilder

class TestBagValidator(test.TestCase):

    def setUp(self):
        self.tf = tempfile.mkdtemp(prefix="validate")
        self.bagdir = os.path.join(self.tf, "samplebag")
        bldr = BagBuilder(self.bagdir, algorithms=["sha1", "sha256"])
        bldr.payload("a.txt", BytesIO(b"hello"))
        bldr.payload("sub/b.txt", BytesIO(b"world"))
        bldr.tag("about.txt", BytesIO(b"about"))
        self.bag = bldr.build()

    def tearDown(self):
        shutil.rmtree(self.tf)

    def test_validate(self):
        valid8r = bagv.BagValidator(self.bag)
        self.assertEqual(valid8r.target, self.bagdir)

        results = valid8r.validate(val.ALL)
        self.assertEqual(len(results.applied()), 3)
        self.assertEqual(len(results.failed()), 0)
        self.assertTrue(results.ok())
        self.assertEqual(set(i.label for i in results.applied()),
                         set([bagv.PAYLOAD_COMPLETE, bagv.PAYLOAD_DECLARED,
                              bagv.CHECKSUMS]))

        self.assertTrue(valid8r.is_valid())
        valid8r.ensure_valid()

    def test_completeness_only(self):
        results = bagv.validate(self.bag, val.ALL, completeness_only=True)
        self.assertEqual(len(results.applied()), 2)
        self.assertNotIn(bagv.CHECKSUMS,
                         [i.label for i in results.applied()])

        results = bagv.validate(self.bag, val.ERROR, completeness_only=True)
        self.assertEqual(len(results.applied()), 1)
        self.assertEqual(results.applied()[0].label, bagv.PAYLOAD_COMPLETE)

    def test_missing(self):
        os.remove(os.path.join(self.bagdir, "data", "a.txt"))
        valid8r = bagv.BagValidator(Bag(self.bagdir))

        results = valid8r.validate(val.ALL)
        self.assertEqual(results.failed_labels(),
                         set([bagv.PAYLOAD_COMPLETE, bagv.CHECKSUMS]))
        failed = [i for i in results.failed()
                    if i.label == bagv.PAYLOAD_COMPLETE][0]
        self.assertEqual(len(failed.comments), 1)
        self.assertIn("data/a.txt", failed.comments[0])

        self.assertFalse(valid8r.is_valid())
        with self.assertRaises(val.BagPackValidationError):
            valid8r.ensure_valid()

    def test_mismatch(self):
        with open(os.path.join(self.bagdir, "data", "sub", "b.txt"), 'wb') as fd:
            fd.write(b"WORLD")
        results = bagv.validate(Bag(self.bagdir), val.ALL)
        self.assertEqual(results.failed_labels(), set([bagv.CHECKSUMS]))

        # one comment per mismatched algorithm
        failed = results.failed()[0]
        self.assertEqual(len(failed.comments), 2)
        for comment in failed.comments:
            self.assertIn("b.txt", comment)

    def test_undeclared(self):
        with open(os.path.join(self.bagdir, "data", "extra.txt"), 'wb') as fd:
            fd.write(b"surprise")
        valid8r = bagv.BagValidator(Bag(self.bagdir))
        results = valid8r.validate(val.ALL)
        self.assertEqual(results.failed_labels(), set([bagv.PAYLOAD_DECLARED]))
        self.assertEqual(results.failed(val.WARN)[0].type, val.WARN)
        self.assertFalse(valid8r.is_valid(val.ALL))
        self.assertTrue(valid8r.is_valid(val.ERROR))


if __name__ == '__main__':
    test.main()
