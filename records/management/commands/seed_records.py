"""
Management command to populate the database with demo records.
"""
import random
from datetime import timedelta

from django.core.management.base import BaseCommand
from django.db import transaction
from django.utils import timezone

from records.models import LabReport, Patient, Prescription, User

NAMES = [
    'Amelia Hart', 'Noah Patel', 'Olivia Chen', 'Liam Okafor', 'Sofia Rossi',
    'Ethan Novak', 'Mia Johansson', 'Lucas Silva', 'Ava Schmidt', 'Mateo Garcia',
    'Isla Murphy', 'Arjun Rao',
]
MEDICINES = [
    ('Amoxicillin', '500mg', 'Three times daily', '7 days'),
    ('Metformin', '850mg', 'Twice daily', '30 days'),
    ('Lisinopril', '10mg', 'Once daily', '30 days'),
    ('Atorvastatin', '20mg', 'Once daily at night', '90 days'),
    ('Paracetamol', '1g', 'Every 6 hours as needed', '5 days'),
    ('Salbutamol', '100mcg', 'Two puffs as needed', '30 days'),
]
TESTS = [
    ('Fasting glucose', '70-110'),
    ('HbA1c', '<5.7'),
    ('Hemoglobin', '12-16'),
    ('Total cholesterol', '<200'),
    ('TSH', '0.4-4.0'),
]


class Command(BaseCommand):
    help = 'Populate database with demo patients, prescriptions and lab reports'

    def add_arguments(self, parser):
        parser.add_argument('--patients', type=int, default=len(NAMES))
        parser.add_argument('--seed', type=int, default=None)
        parser.add_argument('--password', default='changeme123')

    def handle(self, *args, **options):
        rnd = random.Random(options['seed'])
        with transaction.atomic():
            self.create_staff(options['password'])
            patients = self.create_patients(rnd, options['patients'])
            self.create_prescriptions(rnd, patients)
            self.create_lab_reports(rnd, patients)
        self.stdout.write(self.style.SUCCESS('Demo data created.'))

    def create_staff(self, password):
        user, created = User.objects.get_or_create(
            email='staff@medboard.local',
            defaults={'username': 'staff', 'first_name': 'Demo', 'last_name': 'Staff',
                      'email_confirmed_at': timezone.now()},
        )
        if created:
            user.set_password(password)
            user.save(update_fields=['password'])
        self.stdout.write(f'Staff user: {user.email}')
        return user

    def create_patients(self, rnd, count):
        now = timezone.now()
        patients = []
        for i in range(count):
            name = NAMES[i % len(NAMES)] + ('' if i < len(NAMES) else f' {i // len(NAMES) + 1}')
            patient = Patient.objects.create(
                name=name,
                age=rnd.randint(2, 90),
                gender=rnd.choice(['male', 'female', 'other']),
                contact=f'555-{rnd.randint(1000, 9999)}',
                email=f"{name.lower().replace(' ', '.')}@example.com",
                address=f'{rnd.randint(1, 250)} Harbour Street',
                created_at=now - timedelta(days=rnd.randint(0, 200)),
            )
            patients.append(patient)
            self.stdout.write(f'Patient: {patient.name}')
        return patients

    def create_prescriptions(self, rnd, patients):
        now = timezone.now()
        for patient in patients:
            for name, dosage, frequency, duration in rnd.sample(MEDICINES, rnd.randint(0, 3)):
                Prescription.objects.create(
                    patient=patient, medicine_name=name, dosage=dosage, frequency=frequency,
                    duration=duration, prescribed_date=now - timedelta(days=rnd.randint(0, 180)),
                )

    def create_lab_reports(self, rnd, patients):
        now = timezone.now()
        for patient in patients:
            test_date = now - timedelta(days=rnd.randint(0, 180))
            for test_name, normal_range in rnd.sample(TESTS, rnd.randint(0, 3)):
                LabReport.objects.create(
                    patient=patient, test_name=test_name, normal_range=normal_range,
                    result=str(round(rnd.uniform(0.5, 220), 1)), test_date=test_date,
                )
