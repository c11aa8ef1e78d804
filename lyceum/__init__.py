"""
Lyceum: a learning-management backend core.

Courses contain ordered lessons; lessons carry content, exercises, exams and
assignments. Students enroll, submit work and accrue progress; teachers author
content and grade; an admin manages global data. Every action is decided by a
single pure authorization gate.
"""

__version__ = "1.0.0"
__author__ = "Lyceum Development Team"
__description__ = "Role-scoped learning management backend"
