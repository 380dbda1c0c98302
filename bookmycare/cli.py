from __future__ import annotations

import argparse
import sys

from bookmycare.config import Settings, configure_logging
from bookmycare.context import ClinicContext
from bookmycare.errors import ClinicError


def cmd_init(ctx: ClinicContext, args: argparse.Namespace) -> None:
    ctx.init_db(seed=not args.no_seed)
    print("Database initialized." + ("" if args.no_seed else " Seed completed."))


def cmd_list(ctx: ClinicContext, args: argparse.Namespace) -> None:
    if args.entity == "doctors":
        for d in ctx.doctors.list_doctors():
            print(f"{d['id']} | {d['name']} | {d['specialization']} | fee {d['consultation_fee']:.2f}")
    elif args.entity == "appointments":
        for a in ctx.queries.list_appointments(0, "admin"):
            print(
                f"{a['id']} | {a['date']} {a['time']} | Dr. {a['doctor_name']} | "
                f"{a['patient_name']} | {a['status']} | payment {a['payment_status'] or '-'}"
            )


def cmd_register(ctx: ClinicContext, args: argparse.Namespace) -> None:
    profile = {}
    if args.specialization:
        profile["specialization"] = args.specialization
    if args.age is not None:
        profile["age"] = args.age
    uid = ctx.auth.register_user(args.name, args.email, args.password, args.role, phone=args.phone, **profile)
    print(f"User created: {uid}")


def cmd_book(ctx: ClinicContext, args: argparse.Namespace) -> None:
    app = ctx.booking.book_appointment(args.patient_id, args.doctor_id, args.date, args.time)
    print(f"Appointment booked: {app.id} ({app.status.value})")


def cmd_set_status(ctx: ClinicContext, args: argparse.Namespace) -> None:
    app = ctx.status.set_status(args.appointment_id, args.status, args.notes)
    print(f"Appointment {app.id}: {app.status.value}")


def cmd_appointments(ctx: ClinicContext, args: argparse.Namespace) -> None:
    rows = ctx.queries.list_appointments(args.viewer_id, args.role)
    if not rows:
        print("No appointments.")
        return
    for a in rows:
        print(f"{a['id']} | {a['date']} {a['time']} | Dr. {a['doctor_name']} | {a['patient_name']} | {a['status']}")


def cmd_pay(ctx: ClinicContext, args: argparse.Namespace) -> None:
    payment = ctx.payments.create_payment(args.appointment_id, args.amount)
    print(f"Payment recorded: {payment.transaction_id}")


def cmd_stats(ctx: ClinicContext, args: argparse.Namespace) -> None:
    stats = ctx.stats.compute_stats()
    print(f"Patients    : {stats['totalPatients']}")
    print(f"Doctors     : {stats['totalDoctors']}")
    print(f"Appointments: {stats['totalAppointments']}")
    print(f"Revenue     : {stats['revenue']:.2f}")


def cmd_delete_doctor(ctx: ClinicContext, args: argparse.Namespace) -> None:
    ctx.doctors.delete_doctor(args.doctor_id)
    print("Doctor deleted (with appointments and payments).")


def cmd_serve(ctx: ClinicContext, args: argparse.Namespace) -> None:
    import uvicorn

    uvicorn.run("bookmycare.api_main:create_app", factory=True, host=args.host, port=args.port)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="bookmycare", description="BookMyCare administration CLI")
    sub = p.add_subparsers(required=True)

    p_init = sub.add_parser("init", help="Create tables and load seed data")
    p_init.add_argument("--no-seed", action="store_true")
    p_init.set_defaults(func=cmd_init)

    p_list = sub.add_parser("list", help="List entities")
    p_list.add_argument("entity", choices=["doctors", "appointments"])
    p_list.set_defaults(func=cmd_list)

    p_reg = sub.add_parser("register", help="Register a user")
    p_reg.add_argument("--name", required=True)
    p_reg.add_argument("--email", required=True)
    p_reg.add_argument("--password", required=True)
    p_reg.add_argument("--role", required=True, choices=["admin", "doctor", "patient"])
    p_reg.add_argument("--phone", default=None)
    p_reg.add_argument("--specialization", default=None)
    p_reg.add_argument("--age", type=int, default=None)
    p_reg.set_defaults(func=cmd_register)

    p_book = sub.add_parser("book", help="Book an appointment")
    p_book.add_argument("--patient-id", type=int, required=True)
    p_book.add_argument("--doctor-id", type=int, required=True)
    p_book.add_argument("--date", required=True, help="es: 2024-05-01")
    p_book.add_argument("--time", required=True, help="es: 10:00")
    p_book.set_defaults(func=cmd_book)

    p_status = sub.add_parser("set-status", help="Change appointment status")
    p_status.add_argument("--appointment-id", type=int, required=True)
    p_status.add_argument("--status", required=True)
    p_status.add_argument("--notes", default=None)
    p_status.set_defaults(func=cmd_set_status)

    p_apps = sub.add_parser("appointments", help="Appointments visible to a user")
    p_apps.add_argument("--viewer-id", type=int, required=True)
    p_apps.add_argument("--role", required=True, choices=["admin", "doctor", "patient"])
    p_apps.set_defaults(func=cmd_appointments)

    p_pay = sub.add_parser("pay", help="Record a completed payment")
    p_pay.add_argument("--appointment-id", type=int, required=True)
    p_pay.add_argument("--amount", type=float, required=True)
    p_pay.set_defaults(func=cmd_pay)

    p_stats = sub.add_parser("stats", help="Admin statistics")
    p_stats.set_defaults(func=cmd_stats)

    p_del = sub.add_parser("delete-doctor", help="Delete a doctor and everything that depends on it")
    p_del.add_argument("--doctor-id", type=int, required=True)
    p_del.set_defaults(func=cmd_delete_doctor)

    p_serve = sub.add_parser("serve", help="Run the HTTP API")
    p_serve.add_argument("--host", default="127.0.0.1")
    p_serve.add_argument("--port", type=int, default=8000)
    p_serve.set_defaults(func=cmd_serve)

    return p


def main(argv: list[str] | None = None, context: ClinicContext | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = Settings.from_env()
    configure_logging(settings.log_level)
    # notifiche inline: il processo termina subito dopo il comando
    ctx = context or ClinicContext(settings, notify_workers=0)
    try:
        ctx.database.create_all()  # garantisce tabelle
        args.func(ctx, args)
    except ClinicError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    finally:
        if context is None:
            ctx.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
