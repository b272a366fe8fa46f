from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from .models import AuditEvent, ChangeSequence, LabReport, Patient, Prescription, User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ('email', 'username', 'email_confirmed_at', 'is_staff', 'is_active')
    ordering = ('email',)
    search_fields = ('email', 'username', 'first_name', 'last_name')
    fieldsets = BaseUserAdmin.fieldsets + (('Confirmation', {'fields': ('email_confirmed_at',)}),)


class PrescriptionInline(admin.TabularInline):
    model = Prescription
    extra = 0


class LabReportInline(admin.TabularInline):
    model = LabReport
    extra = 0


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ('name', 'age', 'gender', 'contact', 'created_at')
    list_filter = ('gender',)
    search_fields = ('name', 'email', 'contact')
    inlines = [PrescriptionInline, LabReportInline]


@admin.register(Prescription)
class PrescriptionAdmin(admin.ModelAdmin):
    list_display = ('medicine_name', 'dosage', 'frequency', 'patient', 'prescribed_date')
    search_fields = ('medicine_name', 'patient__name')


@admin.register(LabReport)
class LabReportAdmin(admin.ModelAdmin):
    list_display = ('test_name', 'result', 'normal_range', 'patient', 'test_date')
    search_fields = ('test_name', 'patient__name')


@admin.register(ChangeSequence)
class ChangeSequenceAdmin(admin.ModelAdmin):
    list_display = ('table', 'seq')


@admin.register(AuditEvent)
class AuditEventAdmin(admin.ModelAdmin):
    list_display = ('action', 'object_type', 'object_id', 'user', 'created_at')
    list_filter = ('action', 'object_type')
    search_fields = ('object_id', 'user__email')
