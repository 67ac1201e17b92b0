# encoding: utf-8
import os
import unittest as test

import bagpack.constants as cnsts
from bagpack.constants import EolRule

class TestLineSeparator(test.TestCase):

    def test_fixed(self):
        self.assertEqual(cnsts.line_separator(EolRule.UNIX), "\n")
        self.assertEqual(cnsts.line_separator(EolRule.WINDOWS), "\r\n")
        self.assertEqual(cnsts.line_separator(EolRule.CLASSIC), "\r")

    def test_system(self):
        self.assertEqual(cnsts.line_separator(EolRule.SYSTEM), os.linesep)
        self.assertEqual(cnsts.line_separator(EolRule.SYSTEM, "\r\n"), "\r\n")

    def test_counter_system(self):
        self.assertEqual(cnsts.line_separator(EolRule.COUNTER_SYSTEM, "\n"),
                         "\r\n")
        self.assertEqual(cnsts.line_separator(EolRule.COUNTER_SYSTEM, "\r\n"),
                         "\n")

    def test_unknown(self):
        self.assertIsNone(cnsts.line_separator("goober"))

class TestReservedTags(test.TestCase):

    def test_reserved(self):
        for name in ["bagit.txt", "bag-info.txt", "fetch.txt",
                     "manifest-md5.txt", "tagmanifest-sha512.txt"]:
            self.assertTrue(cnsts.is_reserved_tag(name), name)

    def test_not_reserved(self):
        for name in ["about.txt", "meta/bag-info.txt", "metadata/manifest.txt",
                     "meta/manifest-md5.txt", "manifest-md5.json"]:
            self.assertFalse(cnsts.is_reserved_tag(name), name)

class TestRegistries(test.TestCase):

    def test_autogen(self):
        self.assertEqual(cnsts.AUTOGEN_NAMES,
                         ("Bagging-Date", "Bag-Size", "Payload-Oxum",
                          "Bag-Software-Agent"))

    def test_formats(self):
        self.assertEqual(cnsts.SUFFIX_FORMATS['gz'], 'tgz')
        self.assertEqual(cnsts.ARCHIVE_FORMATS, ('tar', 'tgz', 'zip'))
        self.assertEqual(cnsts.FORMAT_SIGNATURES['tar'], (257, b"ustar"))

    def test_checksums(self):
        self.assertEqual(list(cnsts.CHECKSUM_ALGORITHMS.keys()),
                         "md5 sha1 sha224 sha256 sha384 sha512".split())
        self.assertEqual(cnsts.CHECKSUM_ALGORITHMS['sha512'], "SHA-512")


if __name__ == '__main__':
    test.main()
