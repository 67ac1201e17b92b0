"""
This module provides the result types shared by the bag checks:  each test
applied to a bag is recorded as a ValidationIssue, and the issues from one
run are collected in a ValidationResults.
"""
from bagit import BagValidationError

# issue severities; they can be or-ed together to select several
ERROR = 1
WARN  = 2
ALL   = ERROR | WARN

severity_labels = { ERROR: "error", WARN: "warning" }

class ValidationIssue(object):
    """
    the outcome of one test:  the label of the requirement tested, its
    severity, whether it passed, and comments naming what was found wrong
    (e.g. the missing files).
    """

    def __init__(self, label, requirement, severity=ERROR, passed=True,
                 comments=None):
        if severity not in severity_labels:
            raise ValueError("Not a recognized issue severity: " +
                             str(severity))
        self.label = label
        self.requirement = requirement
        self.type = severity
        self._passed = bool(passed)
        self.comments = tuple(str(c) for c in comments or [])

    def passed(self):
        return self._passed

    def failed(self):
        return not self._passed

    @property
    def summary(self):
        """
        a one-line statement of the outcome, e.g.
        "ERROR: Checksums: Every manifest-listed file must match..."
        """
        status = "PASSED"
        if not self._passed:
            status = severity_labels[self.type].upper()
        return "{0}: {1}: {2}".format(status, self.label, self.requirement)

    @property
    def description(self):
        """
        the summary followed by the comments, one per indented line
        """
        return "\n   ".join((self.summary,) + self.comments)

    def __str__(self):
        return self.summary

class ValidationResults(object):
    """
    the issues recorded while testing one bag
    """

    def __init__(self, target, want=ALL):
        """
        :param str target:  a name for the bag being tested
        :param int want:    the severities that ok() takes into account
        """
        self.target = target
        self.want = want
        self._issues = []

    def add(self, label, requirement, severity, passed, comments=None):
        """
        record the outcome of a test and return it as a ValidationIssue
        """
        issue = ValidationIssue(label, requirement, severity, passed, comments)
        self._issues.append(issue)
        return issue

    def applied(self, severity=ALL):
        """
        return the issues of the given severities, in the order recorded
        """
        return [i for i in self._issues if i.type & severity]

    def failed(self, severity=ALL):
        return [i for i in self.applied(severity) if i.failed()]

    def failed_labels(self, severity=ALL):
        """
        return the set of labels of the failed tests of the given severities
        """
        return set(i.label for i in self.failed(severity))

    def ok(self):
        """
        return True if no test of the wanted severities failed
        """
        return not self.failed(self.want)

class BagPackValidationError(BagValidationError):
    """
    an exception indicating that a bag failed some of its tests.  Unlike the
    plain bagit.BagValidationError, it carries the ValidationResults
    (as "results").
    """
    def __init__(self, results):
        self.results = results
        failed = results.failed(results.want)
        msg = "{0}: {1} test(s) failed: {2}".format(
            results.target, len(failed), ", ".join(i.label for i in failed))
        super(BagPackValidationError, self).__init__(
            msg, [i.description for i in failed])
