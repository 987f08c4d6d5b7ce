"""
Sample students written on the very first initialization.
"""

from ..core.entities import Student

INITIAL_STUDENTS = (
    Student(id="1", name="Alice Johnson", email="alice@student.edu", password="password123", fees_paid=True),
    Student(id="2", name="Bob Smith", email="bob@student.edu", password="password123", fees_paid=False),
    Student(id="3", name="Carol Davis", email="carol@student.edu", password="password123", fees_paid=True),
    Student(id="4", name="David Wilson", email="david@student.edu", password="password123", fees_paid=False),
    Student(id="5", name="Emma Brown", email="emma@student.edu", password="password123", fees_paid=True),
)
