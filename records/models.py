"""
Database models for the records service.

Patients, prescriptions and lab reports mirror the tables the front end
reads and writes.  ``ChangeSequence`` backs the per-table sequence
numbers carried by change-feed events and ``AuditEvent`` keeps a trail
of who created or removed what.
"""
from __future__ import annotations

import uuid

from django.contrib.auth.models import AbstractUser
from django.db import models
from django.utils import timezone


class User(AbstractUser):
    """Staff account signing in with e-mail and password.

    ``email_confirmed_at`` stays empty until the confirmation link sent
    on sign-up (or on request) is followed; unconfirmed users cannot
    sign in.
    """
    email = models.EmailField(unique=True)
    email_confirmed_at = models.DateTimeField(null=True, blank=True)

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = ['username']

    @property
    def email_confirmed(self) -> bool:
        return self.email_confirmed_at is not None

    def __str__(self) -> str:
        return self.email


class Patient(models.Model):
    GENDER_CHOICES = [
        ('male', 'Male'),
        ('female', 'Female'),
        ('other', 'Other'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    age = models.PositiveIntegerField()
    gender = models.CharField(max_length=10, choices=GENDER_CHOICES, db_index=True)
    contact = models.CharField(max_length=64, blank=True, default='')
    email = models.EmailField(blank=True, default='')
    address = models.TextField(blank=True, default='')
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self) -> str:
        return f"{self.name} ({self.id})"


class Prescription(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='prescriptions')
    medicine_name = models.CharField(max_length=255, db_index=True)
    dosage = models.CharField(max_length=128)
    frequency = models.CharField(max_length=128)
    duration = models.CharField(max_length=128, blank=True, default='')
    prescribed_date = models.DateTimeField(default=timezone.now, db_index=True)
    remarks = models.TextField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-prescribed_date']

    def __str__(self) -> str:
        return f"{self.medicine_name} {self.dosage} for {self.patient_id}"


class LabReport(models.Model):
    """A single test result.  ``status`` is derived when listing, never stored."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='lab_reports')
    test_name = models.CharField(max_length=255, db_index=True)
    result = models.CharField(max_length=255)
    normal_range = models.CharField(max_length=255, null=True, blank=True)
    test_date = models.DateTimeField(db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-test_date']

    def __str__(self) -> str:
        return f"{self.test_name}={self.result} ({self.patient_id})"


class ChangeSequence(models.Model):
    """Last change sequence number issued for a table."""
    table = models.CharField(max_length=64, primary_key=True)
    seq = models.BigIntegerField(default=0)

    def __str__(self) -> str:
        return f"{self.table}@{self.seq}"


class AuditEvent(models.Model):
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True)
    action = models.CharField(max_length=64)
    object_type = models.CharField(max_length=64, blank=True, null=True)
    object_id = models.CharField(max_length=64, blank=True, null=True)
    detail = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=['action', 'created_at'], name='records_aud_action_3c1f0e_idx'),
            models.Index(fields=['object_type', 'object_id', 'created_at'], name='records_aud_object__9b2d4a_idx'),
        ]

    def __str__(self):
        return f"{self.action}:{self.object_type}/{self.object_id}"
