"""
Model signal receivers feeding the realtime change feed.

Cascaded deletes (a patient's prescriptions and lab reports) emit their
own DELETE events because Django sends ``post_delete`` per collected
object.
"""
from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver

from records.models import LabReport, Patient, Prescription
from records.realtime.feed import publish_change
from records.services.lab_reports import lab_report_row
from records.services.patients import patient_row
from records.services.prescriptions import prescription_row

FEEDS = {
    Patient: ('patients', patient_row),
    Prescription: ('prescriptions', prescription_row),
    LabReport: ('lab_reports', lab_report_row),
}


@receiver(post_save, sender=Patient)
@receiver(post_save, sender=Prescription)
@receiver(post_save, sender=LabReport)
def publish_saved_row(sender, instance, created, raw=False, **kwargs):
    if raw:
        return
    table, to_row = FEEDS[sender]
    publish_change(table, 'INSERT' if created else 'UPDATE', instance.pk, to_row(instance))


@receiver(post_delete, sender=Patient)
@receiver(post_delete, sender=Prescription)
@receiver(post_delete, sender=LabReport)
def publish_deleted_row(sender, instance, **kwargs):
    table, _ = FEEDS[sender]
    publish_change(table, 'DELETE', instance.pk)
